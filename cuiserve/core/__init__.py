"""Core components for cuiserve."""

from .config import ServerConfig, MountConfig, load_config
from .logging import init_logging

__all__ = ["ServerConfig", "MountConfig", "load_config", "init_logging"]
