import io
import subprocess
from typing import Any, Dict, List

import pytest

from backup_compliance import ssh_connection
from backup_compliance.config import Settings
from backup_compliance.error_handling import ChannelConfigurationError
from backup_compliance.output_reader import OutputReader
from backup_compliance.ssh_connection import (
    AdbCommandChannel,
    DeviceCredentials,
    NetmikoCommandChannel,
    ParamikoCommandChannel,
    create_command_channel,
    create_device_credentials,
)


class FakeChannelFile(io.BytesIO):
    """stdout as paramiko hands it back, with the session channel attached."""

    def __init__(self, data: bytes) -> None:
        super().__init__(data)
        self.channel = FakeSessionChannel()


class FakeSessionChannel:
    def __init__(self) -> None:
        self.combine_stderr = False

    def set_combine_stderr(self, combine: bool) -> bool:
        previous, self.combine_stderr = self.combine_stderr, combine
        return previous


class FakeSSHClient:
    instances: List["FakeSSHClient"] = []

    def __init__(self) -> None:
        self.connect_kwargs: Dict[str, Any] = {}
        self.commands: List[str] = []
        self.closed = False
        self.stdouts: List[FakeChannelFile] = []
        FakeSSHClient.instances.append(self)

    def set_missing_host_key_policy(self, policy) -> None:
        self.policy = policy

    def connect(self, **kwargs) -> None:
        self.connect_kwargs = kwargs

    def exec_command(self, command: str, timeout=None):
        self.commands.append(command)
        stdout = FakeChannelFile(b"Backup Manager currently enabled\n")
        self.stdouts.append(stdout)
        return io.BytesIO(), stdout, io.BytesIO()

    def close(self) -> None:
        self.closed = True


class FakeNetmikoConnection:
    def __init__(self, **params) -> None:
        self.params = params
        self.commands: List[str] = []
        self.disconnected = False

    def send_command(self, command: str, read_timeout=None) -> str:
        self.commands.append(command)
        return "restoreStarting: 1 packages\nrestoreFinished: 0"

    def disconnect(self) -> None:
        self.disconnected = True


class FakePopen:
    last: "FakePopen" = None

    def __init__(self, args, stdout=None, stderr=None) -> None:
        self.args = args
        self.pid = 4242
        self.stdout = io.BytesIO(b"Current: 7\n")
        self.wait_calls = 0
        FakePopen.last = self

    def wait(self, timeout=None) -> int:
        self.wait_calls += 1
        return 0

    def kill(self) -> None:
        pass


@pytest.fixture
def credentials() -> DeviceCredentials:
    return DeviceCredentials(hostname="10.0.0.5", username="shell", password="secret", port=2222)


def test_paramiko_channel_connects_lazily_once(monkeypatch, credentials) -> None:
    FakeSSHClient.instances = []
    monkeypatch.setattr(ssh_connection.paramiko, "SSHClient", FakeSSHClient)

    channel = ParamikoCommandChannel(credentials)
    assert FakeSSHClient.instances == []

    first = OutputReader().read_all(channel.execute("bmgr enabled"))
    channel.execute("dumpsys backup").close()

    assert first == ["Backup Manager currently enabled"]
    assert len(FakeSSHClient.instances) == 1
    ssh = FakeSSHClient.instances[0]
    assert ssh.commands == ["bmgr enabled", "dumpsys backup"]
    assert ssh.connect_kwargs["hostname"] == "10.0.0.5"
    assert ssh.connect_kwargs["port"] == 2222

    channel.close()
    assert ssh.closed


def test_paramiko_channel_merges_stderr_into_output(monkeypatch, credentials) -> None:
    FakeSSHClient.instances = []
    monkeypatch.setattr(ssh_connection.paramiko, "SSHClient", FakeSSHClient)

    with ParamikoCommandChannel(credentials) as channel:
        channel.execute("bmgr backupnow foo").close()

    stdout = FakeSSHClient.instances[0].stdouts[0]
    assert stdout.channel.combine_stderr is True


def test_netmiko_channel_wraps_output(monkeypatch, credentials) -> None:
    created: List[FakeNetmikoConnection] = []

    def fake_connect_handler(**params):
        connection = FakeNetmikoConnection(**params)
        created.append(connection)
        return connection

    monkeypatch.setattr(ssh_connection, "ConnectHandler", fake_connect_handler)

    with NetmikoCommandChannel(credentials) as channel:
        lines = OutputReader().read_all(channel.execute("bmgr restore 1 foo"))

    assert lines == ["restoreStarting: 1 packages", "restoreFinished: 0"]
    assert created[0].params["device_type"] == "linux"
    assert created[0].params["host"] == "10.0.0.5"
    assert "key_file" not in created[0].params
    assert created[0].disconnected


def test_netmiko_channel_uses_key_file(credentials) -> None:
    credentials.ssh_key_file = "/home/tester/.ssh/id_ed25519"
    params = NetmikoCommandChannel(credentials)._device_params()
    assert params["use_keys"] is True
    assert params["key_file"] == "/home/tester/.ssh/id_ed25519"


def test_adb_channel_builds_command() -> None:
    assert AdbCommandChannel().build_command("bmgr enabled") == ["adb", "shell", "bmgr enabled"]
    assert AdbCommandChannel("/opt/adb", serial="emulator-5554").build_command("dumpsys backup") == [
        "/opt/adb", "-s", "emulator-5554", "shell", "dumpsys backup"
    ]


def test_adb_channel_reaps_process_on_close(monkeypatch) -> None:
    monkeypatch.setattr(ssh_connection.subprocess, "Popen", FakePopen)

    stream = AdbCommandChannel(serial="emulator-5554").execute("dumpsys backup")
    assert OutputReader().read_all(stream) == ["Current: 7"]

    assert FakePopen.last.args == ["adb", "-s", "emulator-5554", "shell", "dumpsys backup"]
    assert FakePopen.last.stdout.closed
    assert FakePopen.last.wait_calls == 1


def test_adb_channel_kills_hung_process(monkeypatch) -> None:
    class HungPopen(FakePopen):
        killed = False

        def wait(self, timeout=None) -> int:
            self.wait_calls += 1
            if timeout is not None:
                raise subprocess.TimeoutExpired(self.args, timeout)
            return -9

        def kill(self) -> None:
            self.killed = True

    monkeypatch.setattr(ssh_connection.subprocess, "Popen", HungPopen)

    stream = AdbCommandChannel(timeout=0.1).execute("bmgr backupnow foo")
    stream.close()

    assert FakePopen.last.killed
    assert FakePopen.last.wait_calls == 2


def test_create_device_credentials() -> None:
    config = Settings(_env_file=None, device_host="device.lab", device_username="root",
                      device_password="pw", device_port=2200, command_timeout=45)
    creds = create_device_credentials(config)
    assert creds.hostname == "device.lab"
    assert creds.port == 2200
    assert creds.timeout == 45
    assert creds.device_type == "linux"


@pytest.mark.parametrize(
    "channel, expected",
    [("ssh", ParamikoCommandChannel), ("netmiko", NetmikoCommandChannel), ("adb", AdbCommandChannel)],
)
def test_create_command_channel(channel, expected) -> None:
    assert isinstance(create_command_channel(Settings(_env_file=None, channel=channel)), expected)


def test_create_command_channel_rejects_unknown() -> None:
    config = Settings.model_construct(channel="telnet")
    with pytest.raises(ChannelConfigurationError):
        create_command_channel(config)
