import io
from typing import Dict, List, Union

import pytest

from backup_compliance.config import Settings
from backup_compliance.control_client import BackupControlClient
from backup_compliance.ssh_connection import CommandChannel


class TrackingStream(io.BytesIO):
    """In-memory command output that counts how often it is closed."""

    def __init__(self, data: bytes = b""):
        super().__init__(data)
        self.close_calls = 0

    def close(self):
        self.close_calls += 1
        super().close()


Output = Union[str, Exception, List[str]]


class FakeCommandChannel(CommandChannel):
    """Serves canned output per command.

    A list value is consumed one entry per call, repeating the last entry.
    """

    def __init__(self, outputs: Dict[str, Output] = None):
        self.outputs = dict(outputs or {})
        self.commands: List[str] = []
        self.streams: List[TrackingStream] = []
        self.closed = False

    def execute(self, command: str) -> TrackingStream:
        self.commands.append(command)
        output = self.outputs.get(command, "")
        if isinstance(output, Exception):
            raise output
        if isinstance(output, list):
            output = output.pop(0) if len(output) > 1 else output[0]
        stream = TrackingStream(output.encode("utf-8"))
        self.streams.append(stream)
        return stream

    def close(self):
        self.closed = True


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        channel="adb",
        init_timeout_seconds=0.2,
        init_poll_interval_seconds=0.01,
    )


@pytest.fixture
def fake_channel() -> FakeCommandChannel:
    return FakeCommandChannel()


@pytest.fixture
def client(fake_channel: FakeCommandChannel, test_settings: Settings) -> BackupControlClient:
    return BackupControlClient(fake_channel, settings=test_settings)
