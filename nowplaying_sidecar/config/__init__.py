"""
Configuration management for the sidecar.

Settings are loaded from a TOML file (the packaged `sidecar.toml` unless
another path is given) and can be overridden for the direct connection path
with the ROON_HOST and ROON_PORT environment variables.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

DEFAULT_CONFIG_FILE = CONFIG_DIR / "sidecar.toml"

ENV_HOST = "ROON_HOST"
ENV_PORT = "ROON_PORT"


@dataclass
class ArtworkSettings:
    """Artwork cache and image request settings."""

    cache_size: int = 100
    cache_ttl_seconds: float = 3600.0
    fetch_timeout_seconds: float = 10.0
    scale: str = "fit"
    width: int = 64
    height: int = 64
    format: str = "image/jpeg"

    @property
    def image_options(self) -> dict[str, Any]:
        """Options passed with every image request."""
        return {
            "scale": self.scale,
            "width": self.width,
            "height": self.height,
            "format": self.format,
        }


@dataclass
class ConnectionSettings:
    """Controller connection settings used by the pairing agent."""

    host: str | None = None
    port: int = 9100
    reconnect_delay_seconds: float = 5.0

    @property
    def uses_discovery(self) -> bool:
        return not self.host


@dataclass
class OutputSettings:
    """Host protocol settings."""

    heartbeat_interval_seconds: float = 0.0


@dataclass
class SidecarConfig:
    """Loaded sidecar configuration."""

    artwork: ArtworkSettings = field(default_factory=ArtworkSettings)
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    output: OutputSettings = field(default_factory=OutputSettings)


def _number(section: Mapping[str, Any], key: str, default: float, *, minimum: float = 0) -> float:
    """Read a non-negative number, falling back to the default if invalid."""
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        logger.warning("Invalid value for %s: %r (using %s)", key, value, default)
        return default
    return value


def _string(section: Mapping[str, Any], key: str, default: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str):
        logger.warning("Invalid value for %s: %r (using %s)", key, value, default)
        return default
    return value


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    """Return a config table, or an empty one if the key is not a table."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        logger.warning("Invalid [%s] section: %r (using defaults)", name, section)
        return {}
    return section


def _parse_artwork(data: Mapping[str, Any]) -> ArtworkSettings:
    defaults = ArtworkSettings()
    return ArtworkSettings(
        cache_size=int(_number(data, "cache_size", defaults.cache_size, minimum=1)),
        cache_ttl_seconds=float(_number(data, "cache_ttl_seconds", defaults.cache_ttl_seconds)),
        fetch_timeout_seconds=float(
            _number(data, "fetch_timeout_seconds", defaults.fetch_timeout_seconds)
        ),
        scale=_string(data, "scale", defaults.scale),
        width=int(_number(data, "width", defaults.width, minimum=1)),
        height=int(_number(data, "height", defaults.height, minimum=1)),
        format=_string(data, "format", defaults.format),
    )


def _parse_connection(data: Mapping[str, Any]) -> ConnectionSettings:
    defaults = ConnectionSettings()
    host = _string(data, "host", "")
    return ConnectionSettings(
        host=host or None,
        port=int(_number(data, "port", defaults.port, minimum=1)),
        reconnect_delay_seconds=float(
            _number(data, "reconnect_delay_seconds", defaults.reconnect_delay_seconds)
        ),
    )


def _parse_output(data: Mapping[str, Any]) -> OutputSettings:
    defaults = OutputSettings()
    return OutputSettings(
        heartbeat_interval_seconds=float(
            _number(data, "heartbeat_interval_seconds", defaults.heartbeat_interval_seconds)
        ),
    )


def apply_env_overrides(
    config: SidecarConfig, environ: Mapping[str, str] | None = None
) -> SidecarConfig:
    """
    Apply ROON_HOST / ROON_PORT to the connection settings.

    An unparsable port is logged and ignored.
    """
    env = os.environ if environ is None else environ

    host = env.get(ENV_HOST, "").strip()
    if host:
        logger.info("Using manual controller address: %s", host)
        config.connection.host = host

    port = env.get(ENV_PORT, "").strip()
    if port:
        try:
            value = int(port)
            if not 0 < value < 65536:
                raise ValueError(port)
        except ValueError:
            logger.warning("Ignoring invalid %s: %r", ENV_PORT, port)
        else:
            config.connection.port = value

    return config


def load_config(
    config_path: Path | None = None, environ: Mapping[str, str] | None = None
) -> SidecarConfig:
    """
    Load sidecar configuration from a TOML file.

    Args:
        config_path: Path to a TOML file. If None, uses the packaged defaults.
        environ: Environment for overrides. If None, uses os.environ.

    Returns:
        Loaded SidecarConfig instance.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    logger.debug("Loading sidecar config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    config = SidecarConfig(
        artwork=_parse_artwork(_section(data, "artwork")),
        connection=_parse_connection(_section(data, "connection")),
        output=_parse_output(_section(data, "output")),
    )
    return apply_env_overrides(config, environ)


# Global singleton instance (lazy loaded)
_config: SidecarConfig | None = None


def get_config() -> SidecarConfig:
    """
    Get the global configuration (lazy loaded singleton).

    Returns:
        The SidecarConfig instance.
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def reload_config(config_path: Path | None = None) -> SidecarConfig:
    """
    Force reload of the global configuration.

    Returns:
        The newly loaded SidecarConfig instance.
    """
    global _config
    _config = load_config(config_path)
    return _config
