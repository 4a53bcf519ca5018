"""Configuration for mindustry-probe.

Settings are loaded from an optional YAML file into a frozen
``ProbeConfig`` that is passed explicitly to the engine, reporter and
scheduler.

Example ``probe.yaml``:

    bind_port: 65415
    default_port: 6567
    timeout: 30
    output_dir: ./out
    mirrors:
      - https://raw.githubusercontent.com/Anuken/Mindustry/master/servers_v7.json
    log_level: INFO
"""

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

# Mindustry status request
REQUEST_PAYLOAD = b"\xfe\x01"

# Local port the requests are sent from
DEFAULT_BIND_PORT = 65415

# Port assumed when a server address has none
DEFAULT_SERVER_PORT = 6567

# Receive window in seconds
DEFAULT_TIMEOUT = 30.0

DEFAULT_MIRRORS = (
    "https://raw.githubusercontent.com/Anuken/Mindustry/master/servers_v7.json",
    "https://cdn.jsdelivr.net/gh/Anuken/Mindustry@master/servers_v7.json",
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class ProbeConfig:
    """Settings for one or more discovery rounds."""
    bind_host: str = "0.0.0.0"
    bind_port: int = DEFAULT_BIND_PORT
    default_port: int = DEFAULT_SERVER_PORT
    timeout: float = DEFAULT_TIMEOUT
    request_payload: bytes = REQUEST_PAYLOAD
    mirrors: tuple[str, ...] = DEFAULT_MIRRORS
    request_timeout: float = 10.0
    output_dir: Path = field(default_factory=lambda: Path("."))
    raw_file: str = "output.json"
    report_file: str = "responses.json"
    no_response_file: str = "serveip.json"
    interval: float = DEFAULT_TIMEOUT
    log_level: str = "INFO"

    @property
    def raw_path(self) -> Path:
        return Path(self.output_dir) / self.raw_file

    @property
    def report_path(self) -> Path:
        return Path(self.output_dir) / self.report_file

    @property
    def no_response_path(self) -> Path:
        return Path(self.output_dir) / self.no_response_file

    def with_overrides(self, **overrides: Any) -> "ProbeConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return _validate(replace(self, **changes))


def load_config(config_path: Optional[Union[str, Path]] = None) -> ProbeConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file. None returns the defaults.

    Returns:
        Validated ProbeConfig.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ConfigError: If the YAML is malformed or a value is invalid.
    """
    if config_path is None:
        return ProbeConfig()

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_file, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed YAML in {config_path}: {e}") from e

    config = config_from_dict(data or {}, source=str(config_file))
    logger.info("Configuration loaded from %s", config_path)
    return config


def config_from_dict(data: dict, source: str = "<inline>") -> ProbeConfig:
    """Build a ProbeConfig from an already loaded mapping."""
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping in {source}, got {type(data).__name__}")

    known = {f.name for f in fields(ProbeConfig)}
    for key in data:
        if key not in known:
            logger.warning("Ignoring unknown config key '%s' in %s", key, source)

    values = {k: v for k, v in data.items() if k in known}

    if "mirrors" in values:
        mirrors = values["mirrors"]
        if isinstance(mirrors, str):
            mirrors = [mirrors]
        if not isinstance(mirrors, list) or not all(isinstance(m, str) for m in mirrors):
            raise ConfigError(f"'mirrors' must be a list of URLs in {source}")
        values["mirrors"] = tuple(mirrors)

    if "request_payload" in values:
        payload = values["request_payload"]
        if isinstance(payload, str):
            try:
                payload = bytes.fromhex(payload)
            except ValueError as e:
                raise ConfigError(f"'request_payload' must be hex in {source}") from e
        values["request_payload"] = payload

    if "output_dir" in values:
        values["output_dir"] = Path(values["output_dir"])

    try:
        config = ProbeConfig(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid config in {source}: {e}") from e

    return _validate(config, source)


def _validate(config: ProbeConfig, source: str = "<inline>") -> ProbeConfig:
    """Check value types and ranges."""
    for name in ("bind_port", "default_port"):
        value = getattr(config, name)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigError(f"'{name}' must be an integer in {source}")
    if not 0 <= config.bind_port <= 65535:
        raise ConfigError(f"'bind_port' out of range: {config.bind_port}")
    if not 1 <= config.default_port <= 65535:
        raise ConfigError(f"'default_port' out of range: {config.default_port}")

    for name in ("timeout", "interval", "request_timeout"):
        value = getattr(config, name)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
            raise ConfigError(f"'{name}' must be a non-negative number in {source}")

    if not isinstance(config.request_payload, bytes) or not config.request_payload:
        raise ConfigError(f"'request_payload' must be non-empty bytes in {source}")

    if config.log_level.upper() not in logging.getLevelNamesMapping():
        raise ConfigError(f"Unknown log level '{config.log_level}' in {source}")

    return config


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        force=True,
    )
