"""
Configuration management for openhlx.

This module loads the server, client, backup and proxy settings from a TOML
file. The defaults ship next to this module in ``hlx.toml``.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent


@dataclass
class ServerConfig:
    """Listener settings for the simulator."""

    host: str = "0.0.0.0"
    port: int = 23
    scheme: str = "telnet"


@dataclass
class ClientConfig:
    host: str = "127.0.0.1"
    port: int = 23
    handshake_timeout: float = 5.0
    request_timeout: float = 10.0


@dataclass
class ProxyConfig:
    """Listener and upstream settings for the proxy."""

    host: str = "0.0.0.0"
    port: int = 23
    upstream_host: str = "127.0.0.1"
    upstream_port: int = 23
    reconnect_interval: float = 5.0


@dataclass
class BackupConfig:
    path: str = "hlx-backup.db"
    autosave_interval: float = 30.0


@dataclass
class HlxConfig:
    """Loaded openhlx configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)


def _section(data: dict[str, Any], name: str, cls: type) -> Any:
    """Build a section dataclass, ignoring unknown keys."""
    values = data.get(name, {})
    known = {key: value for key, value in values.items() if key in cls.__dataclass_fields__}
    unknown = set(values) - set(known)
    if unknown:
        logger.warning("Ignoring unknown [%s] keys: %s", name, ", ".join(sorted(unknown)))
    return cls(**known)


def load_config(config_path: Path | None = None) -> HlxConfig:
    """
    Load configuration from a TOML file.

    Args:
        config_path: Path to hlx.toml. If None, uses default location.

    Returns:
        Loaded HlxConfig instance.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "hlx.toml"

    logger.debug("Loading config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    return HlxConfig(
        server=_section(data, "server", ServerConfig),
        client=_section(data, "client", ClientConfig),
        backup=_section(data, "backup", BackupConfig),
        proxy=_section(data, "proxy", ProxyConfig),
    )


# Global singleton instance (lazy loaded)
_config: HlxConfig | None = None


def get_config() -> HlxConfig:
    """
    Get the global configuration (lazy loaded singleton).

    Returns:
        The HlxConfig instance.
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def reload_config(config_path: Path | None = None) -> HlxConfig:
    """Force reload of the configuration."""
    global _config
    _config = load_config(config_path)
    return _config
