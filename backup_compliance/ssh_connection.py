"""
Command Channels for Device Shell Access
========================================

This module provides the transports that carry shell commands to the device
under test and hand back the command output as a byte stream.

Channels:
- ParamikoCommandChannel: exec over an SSH session (Paramiko)
- NetmikoCommandChannel: interactive SSH shell via Netmiko
- AdbCommandChannel: "adb shell" subprocess

A channel never retries and never interprets output. Transport failures are
raised to the caller unchanged. The caller owns every returned stream and is
responsible for closing it.
"""

import abc
import io
import logging
import subprocess
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional

import paramiko
from netmiko import ConnectHandler

from backup_compliance.error_handling import ChannelConfigurationError

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class DeviceCredentials:
    """Device connection credentials and parameters."""
    hostname: str
    username: str
    password: str = ""
    port: int = 22
    device_type: str = "linux"  # Netmiko device type
    ssh_key_file: Optional[str] = None
    timeout: int = 30
    conn_timeout: int = 10
    auth_timeout: int = 10
    banner_timeout: int = 15


class CommandChannel(abc.ABC):
    """Sends a command string to the device and returns its output stream."""

    @abc.abstractmethod
    def execute(self, command: str) -> BinaryIO:
        """Run command; return a readable byte stream the caller must close."""
        raise NotImplementedError

    def close(self):
        """Release the underlying connection, if any."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ParamikoCommandChannel(CommandChannel):
    """Runs each command in its own exec session over a shared SSH transport."""

    def __init__(self, credentials: DeviceCredentials):
        self.credentials = credentials
        self._client: Optional[paramiko.SSHClient] = None

    def _connect(self) -> paramiko.SSHClient:
        if self._client is not None:
            return self._client

        creds = self.credentials
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        logger.debug(f"Attempting SSH connection to {creds.hostname}:{creds.port}")
        client.connect(
            hostname=creds.hostname,
            port=creds.port,
            username=creds.username,
            password=creds.password or None,
            key_filename=creds.ssh_key_file,
            timeout=creds.conn_timeout,
            auth_timeout=creds.auth_timeout,
            banner_timeout=creds.banner_timeout,
        )
        logger.info(f"Connected to {creds.hostname}:{creds.port}")
        self._client = client
        return client

    def execute(self, command: str) -> BinaryIO:
        client = self._connect()
        logger.debug(f"Executing over SSH on {self.credentials.hostname}: {command}")
        stdin, stdout, stderr = client.exec_command(command, timeout=self.credentials.timeout)
        stdin.close()
        # Interleave stderr so diagnostics land in the same line stream
        stdout.channel.set_combine_stderr(True)
        return stdout

    def close(self):
        if self._client is not None:
            try:
                self._client.close()
                logger.debug(f"Disconnected from {self.credentials.hostname}")
            finally:
                self._client = None


class NetmikoCommandChannel(CommandChannel):
    """Sends commands through a Netmiko interactive session.

    Netmiko returns the full output as text, so the stream handed back is an
    in-memory buffer of the already-completed command.
    """

    def __init__(self, credentials: DeviceCredentials, encoding: str = "utf-8"):
        self.credentials = credentials
        self.encoding = encoding
        self._connection: Optional[Any] = None

    def _device_params(self) -> Dict[str, Any]:
        creds = self.credentials
        device_params = {
            'device_type': creds.device_type,
            'host': creds.hostname,
            'username': creds.username,
            'password': creds.password,
            'port': creds.port,
            'timeout': creds.timeout,
            'conn_timeout': creds.conn_timeout,
            'auth_timeout': creds.auth_timeout,
            'banner_timeout': creds.banner_timeout,
            'verbose': False
        }

        # Add SSH key file if provided
        if creds.ssh_key_file:
            device_params['use_keys'] = True
            device_params['key_file'] = creds.ssh_key_file

        return device_params

    def _connect(self):
        if self._connection is None:
            logger.debug(f"Attempting Netmiko connection to {self.credentials.hostname}")
            self._connection = ConnectHandler(**self._device_params())
            logger.info(f"Connected to {self.credentials.hostname} ({self.credentials.device_type})")
        return self._connection

    def execute(self, command: str) -> BinaryIO:
        connection = self._connect()
        logger.debug(f"Executing via Netmiko on {self.credentials.hostname}: {command}")
        output = connection.send_command(command, read_timeout=self.credentials.timeout)
        return io.BytesIO(output.encode(self.encoding))

    def close(self):
        if self._connection is not None:
            try:
                self._connection.disconnect()
            finally:
                self._connection = None


class _ProcessOutput:
    """stdout of a running process; closing it also reaps the process."""

    def __init__(self, process: subprocess.Popen, timeout: Optional[float] = None):
        self._process = process
        self._timeout = timeout

    def readline(self) -> bytes:
        return self._process.stdout.readline()

    def close(self):
        self._process.stdout.close()
        try:
            self._process.wait(timeout=self._timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"adb process {self._process.pid} did not exit, killing it")
            self._process.kill()
            self._process.wait()


class AdbCommandChannel(CommandChannel):
    """Runs commands with "adb shell" against a connected device."""

    def __init__(self, adb_path: str = "adb", serial: Optional[str] = None, timeout: Optional[float] = 30):
        self.adb_path = adb_path
        self.serial = serial
        self.timeout = timeout

    def build_command(self, command: str) -> List[str]:
        args = [self.adb_path]
        if self.serial:
            args.extend(["-s", self.serial])
        args.extend(["shell", command])
        return args

    def execute(self, command: str) -> BinaryIO:
        args = self.build_command(command)
        logger.debug(f"Executing via adb: {args}")
        process = subprocess.Popen(args, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        return _ProcessOutput(process, timeout=self.timeout)


def create_device_credentials(config) -> DeviceCredentials:
    """Helper function to create DeviceCredentials from settings."""
    return DeviceCredentials(
        hostname=config.device_host,
        username=config.device_username,
        password=config.device_password,
        port=config.device_port,
        device_type=config.netmiko_device_type,
        ssh_key_file=config.ssh_key_file,
        timeout=config.command_timeout,
    )


def create_command_channel(config) -> CommandChannel:
    """Build the command channel selected by config.channel."""
    if config.channel == "ssh":
        return ParamikoCommandChannel(create_device_credentials(config))
    if config.channel == "netmiko":
        return NetmikoCommandChannel(create_device_credentials(config), encoding=config.output_encoding)
    if config.channel == "adb":
        return AdbCommandChannel(config.adb_path, config.adb_serial, timeout=config.command_timeout)

    raise ChannelConfigurationError(f"Unknown command channel: {config.channel!r}")
