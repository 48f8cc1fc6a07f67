import logging
from typing import Literal, Optional

from pydantic_settings import BaseSettings

from backup_compliance.outcomes import PollConfig

LOCAL_TRANSPORT = "android/com.android.internal.backup.LocalTransport"
LOCAL_TRANSPORT_TOKEN = "1"


class Settings(BaseSettings):
    # Command channel
    channel: Literal["ssh", "netmiko", "adb"] = "adb"
    command_timeout: int = 30
    output_encoding: str = "utf-8"

    # SSH / Netmiko Configuration
    device_host: str = "localhost"
    device_port: int = 22
    device_username: str = "shell"
    device_password: str = ""
    ssh_key_file: Optional[str] = None
    netmiko_device_type: str = "linux"

    # adb Configuration
    adb_path: str = "adb"
    adb_serial: Optional[str] = None

    # Backup Manager
    local_transport: str = LOCAL_TRANSPORT
    local_transport_token: str = LOCAL_TRANSPORT_TOKEN
    init_timeout_seconds: float = 30.0
    init_poll_interval_seconds: float = 1.0

    # Application Settings
    log_level: str = "INFO"

    class Config:
        env_prefix = "BMGR_"
        env_file = ".env"
        extra = "ignore"

    def poll_config(self) -> PollConfig:
        """Bounded-wait parameters for Backup Manager initialization."""
        return PollConfig(
            timeout_seconds=self.init_timeout_seconds,
            poll_interval_seconds=self.init_poll_interval_seconds,
        )


def configure_logging(level: Optional[str] = None):
    """Configure root logging from settings."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = Settings()
