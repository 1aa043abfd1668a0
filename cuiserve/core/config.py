"""
Configuration system for cuiserve.

Built-in defaults reproduce the stock layout:

    /cui -> ./app/pkg              (directory listing)
    /    -> ./app/target/html      (index.html)

An optional cuiserve.yaml in the working directory may override the bind
address and the mounts. A .env file is loaded first so ${VAR} placeholders
and the log filter variable can come from it.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

import yaml
from dotenv import load_dotenv


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
LOG_ENV = "CUISERVE_LOG"
DEFAULT_LOG_FILTER = "info"


class ConfigError(ValueError):
    """Raised when cuiserve.yaml cannot be turned into a ServerConfig."""


@dataclass
class MountConfig:
    """A URL prefix served from a directory on disk."""
    path: str
    directory: Path
    index_file: Optional[str] = None
    show_listing: bool = False

    def __post_init__(self):
        self.path = normalize_prefix(self.path)
        self.directory = Path(self.directory)


def default_mounts() -> List[MountConfig]:
    return [
        MountConfig("/cui", Path("./app/pkg"), show_listing=True),
        MountConfig("/", Path("./app/target/html"), index_file="index.html"),
    ]


@dataclass
class ServerConfig:
    """Main configuration object."""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    mounts: List[MountConfig] = field(default_factory=default_mounts)
    log_env: str = LOG_ENV
    default_log_filter: str = DEFAULT_LOG_FILTER

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def get_mount(self, prefix: str) -> MountConfig:
        """Get mount config by URL prefix."""
        prefix = normalize_prefix(prefix)
        for mount in self.mounts:
            if mount.path == prefix:
                return mount
        raise ValueError(f"Mount '{prefix}' not found. Available: {[m.path for m in self.mounts]}")


def normalize_prefix(prefix: str) -> str:
    """'/cui/' -> '/cui', '' -> '/'."""
    prefix = "/" + prefix.strip("/")
    return prefix


def _resolve_env_vars(value: Any) -> Any:
    """Resolve ${VAR} placeholders from environment."""
    if isinstance(value, str):
        pattern = r'\$\{([^}]+)\}'
        def replacer(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))
        return re.sub(pattern, replacer, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _find_config_file() -> Optional[Path]:
    """Find cuiserve.yaml in the working directory."""
    try:
        cwd = Path.cwd()
    except OSError:
        return None
    for loc in (cwd / "cuiserve.yaml", cwd / ".cuiserve.yaml"):
        if loc.exists():
            return loc
    return None


def _parse_mount_config(data: Dict[str, Any]) -> MountConfig:
    """Parse a single entry of the mounts list."""
    if not isinstance(data, dict):
        raise ConfigError(f"Mount entry must be a mapping, got {type(data).__name__}")
    if "path" not in data or "directory" not in data:
        raise ConfigError(f"Mount entry needs 'path' and 'directory': {data}")
    return MountConfig(
        path=str(data["path"]),
        directory=Path(str(data["directory"])),
        index_file=data.get("index_file"),
        show_listing=bool(data.get("show_listing", False)),
    )


def load_config(config_path: Optional[Path] = None, env_path: Optional[Path] = None) -> ServerConfig:
    """
    Load configuration from YAML and environment.

    Args:
        config_path: Path to cuiserve.yaml (auto-detected if not provided)
        env_path: Path to .env file (auto-detected if not provided)

    Returns:
        ServerConfig with defaults filled in for anything not set
    """
    if env_path and env_path.exists():
        load_dotenv(env_path)
    else:
        env_locations = []
        if config_path:
            env_locations.append(config_path.parent / ".env")
        try:
            env_locations.append(Path.cwd() / ".env")
        except OSError:
            pass
        for loc in env_locations:
            if loc.exists():
                load_dotenv(loc)
                break

    yaml_path = config_path or _find_config_file()

    if not yaml_path or not yaml_path.exists():
        return ServerConfig()

    with open(yaml_path, "r") as f:
        try:
            raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {yaml_path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"{yaml_path} must contain a mapping at the top level")

    config_data = _resolve_env_vars(raw_config)

    server_section = config_data.get("server", {}) or {}
    host = server_section.get("host", DEFAULT_HOST)
    try:
        port = int(server_section.get("port", DEFAULT_PORT))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid port: {server_section.get('port')!r}") from e

    mounts_section = config_data.get("mounts")
    if mounts_section is None:
        mounts = default_mounts()
    else:
        if not isinstance(mounts_section, list):
            raise ConfigError("'mounts' must be a list")
        mounts = [_parse_mount_config(entry) for entry in mounts_section]

    logging_section = config_data.get("logging", {}) or {}

    return ServerConfig(
        host=host,
        port=port,
        mounts=mounts,
        log_env=logging_section.get("env", LOG_ENV),
        default_log_filter=logging_section.get("default", DEFAULT_LOG_FILTER),
    )
