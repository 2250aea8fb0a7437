"""
Configuration management for serialnet.

Loads configuration from YAML files with environment variable overrides.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


# Default configuration paths
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "serialnet"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
SYSTEM_CONFIG_FILE = Path("/etc/serialnet/config.yaml")

# Socket.IO namespace doubling as the protocol identifier
PROTOCOL_NAMESPACE = "/serialport-net"
# Socket.IO event carrying one protocol message per frame
FRAME_EVENT = "frame"


@dataclass
class ServerConfig:
    """Network server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    namespace: str = PROTOCOL_NAMESPACE
    cors_allowed_origins: str = "*"


@dataclass
class SerialConfig:
    """Serial device driver configuration."""

    exclusive: bool = True
    read_size: int = 4096
    read_timeout: float = 0.1
    default_baud: int = 115200


@dataclass
class ClientConfig:
    """Remote client configuration."""

    url: str = "http://localhost:8080"
    namespace: str = PROTOCOL_NAMESPACE
    request_timeout: Optional[float] = None  # None waits forever
    connect_timeout: float = 5.0


@dataclass
class Config:
    """Main configuration for serialnet."""

    server: ServerConfig = field(default_factory=ServerConfig)
    serial: SerialConfig = field(default_factory=SerialConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        server_data = data.get("server", {})
        serial_data = data.get("serial", {})
        client_data = data.get("client", {})

        server = ServerConfig(
            host=server_data.get("host", "0.0.0.0"),
            port=server_data.get("port", 8080),
            namespace=server_data.get("namespace", PROTOCOL_NAMESPACE),
            cors_allowed_origins=server_data.get("cors_allowed_origins", "*"),
        )

        serial = SerialConfig(
            exclusive=serial_data.get("exclusive", True),
            read_size=serial_data.get("read_size", 4096),
            read_timeout=serial_data.get("read_timeout", 0.1),
            default_baud=serial_data.get("default_baud", 115200),
        )

        client = ClientConfig(
            url=client_data.get("url", "http://localhost:8080"),
            namespace=client_data.get("namespace", PROTOCOL_NAMESPACE),
            request_timeout=client_data.get("request_timeout"),
            connect_timeout=client_data.get("connect_timeout", 5.0),
        )

        return cls(
            server=server,
            serial=serial,
            client=client,
            log_level=data.get("log_level", "INFO"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert Config to dictionary."""
        return {
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "namespace": self.server.namespace,
                "cors_allowed_origins": self.server.cors_allowed_origins,
            },
            "serial": {
                "exclusive": self.serial.exclusive,
                "read_size": self.serial.read_size,
                "read_timeout": self.serial.read_timeout,
                "default_baud": self.serial.default_baud,
            },
            "client": {
                "url": self.client.url,
                "namespace": self.client.namespace,
                "request_timeout": self.client.request_timeout,
                "connect_timeout": self.client.connect_timeout,
            },
            "log_level": self.log_level,
        }


def load_config(
    config_path: Optional[Path] = None,
    create_if_missing: bool = False,
) -> Config:
    """
    Load configuration from YAML file.

    Search order:
    1. Explicit path if provided
    2. SERIALNET_CONFIG environment variable
    3. ~/.config/serialnet/config.yaml
    4. /etc/serialnet/config.yaml
    5. Default values

    Environment variable overrides:
    - SERIALNET_HOST: Override server.host
    - SERIALNET_PORT: Override server.port
    - SERIALNET_URL: Override client.url
    - SERIALNET_REQUEST_TIMEOUT: Override client.request_timeout
    - SERIALNET_LOG_LEVEL: Override log_level

    Args:
        config_path: Optional explicit path to config file
        create_if_missing: Create default config if no config found

    Returns:
        Loaded configuration
    """
    if config_path:
        paths_to_try = [config_path]
    else:
        env_path = os.environ.get("SERIALNET_CONFIG")
        paths_to_try = []
        if env_path:
            paths_to_try.append(Path(env_path))
        paths_to_try.extend([DEFAULT_CONFIG_FILE, SYSTEM_CONFIG_FILE])

    config_data = {}
    for path in paths_to_try:
        if path.exists():
            try:
                with open(path) as f:
                    config_data = yaml.safe_load(f) or {}
                break
            except Exception:
                continue

    config = Config.from_dict(config_data)
    config = _apply_env_overrides(config)

    if create_if_missing and not any(p.exists() for p in paths_to_try):
        save_config(config, DEFAULT_CONFIG_FILE)

    return config


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if "SERIALNET_HOST" in os.environ:
        config.server.host = os.environ["SERIALNET_HOST"]

    if "SERIALNET_PORT" in os.environ:
        try:
            config.server.port = int(os.environ["SERIALNET_PORT"])
        except ValueError:
            pass

    if "SERIALNET_URL" in os.environ:
        config.client.url = os.environ["SERIALNET_URL"]

    if "SERIALNET_REQUEST_TIMEOUT" in os.environ:
        value = os.environ["SERIALNET_REQUEST_TIMEOUT"]
        if value.lower() in ("", "none", "0"):
            config.client.request_timeout = None
        else:
            try:
                config.client.request_timeout = float(value)
            except ValueError:
                pass

    if "SERIALNET_LOG_LEVEL" in os.environ:
        config.log_level = os.environ["SERIALNET_LOG_LEVEL"]

    return config


def save_config(config: Config, path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration to save
        path: Path to save to
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write("# serialnet Configuration\n")
        f.write("# request_timeout: null waits for responses indefinitely\n\n")
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)


def get_default_config() -> Config:
    """Get default configuration without loading from file."""
    return Config()
