"""Application configuration using pydantic-settings."""

import logging
import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

from mavparam_gateway.core.models import ConnectionSettings, ConnectionType


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables
    prefixed with MAVPARAM_ (e.g., MAVPARAM_SERIAL_PORT).
    """

    connection_type: ConnectionType = ConnectionType.SERIAL
    serial_port: str = "/dev/ttyACM0"
    serial_baud: int = 115200
    tcp_host: str = "127.0.0.1"
    tcp_port: int = 5760
    auto_connect: bool = True
    auto_refresh: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    system_id: int = 255
    component_id: int = 190
    target_system: int = 1
    target_component: int = 1

    heartbeat_timeout: float = 5.0
    heartbeat_interval: float = 1.0
    connect_timeout: float = 5.0
    idle_timeout: float = 3.0
    download_deadline: float = 60.0
    max_retries: int = 3
    write_timeout: float = 5.0
    verify_timeout: float = 3.0
    persistence_delay: float = 0.2
    tolerance: float = 0.001

    model_config = SettingsConfigDict(env_prefix="MAVPARAM_")

    def connection_settings(self) -> ConnectionSettings:
        """Build the link description for the configured transport kind."""
        if self.connection_type == ConnectionType.TCP:
            return ConnectionSettings(kind=ConnectionType.TCP, host=self.tcp_host, port=self.tcp_port)
        return ConnectionSettings(
            kind=ConnectionType.SERIAL,
            port_name=self.serial_port,
            baud_rate=self.serial_baud,
        )


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
