"""
cuiserve - static file server for the cui build output.

Serves ./app/pkg under /cui with directory listings and ./app/target/html
under / with index.html, behind an access log.
"""

__version__ = "0.1.0"
__author__ = "cuiserve Contributors"

from .core.config import load_config, ServerConfig, MountConfig
from .api.server import create_app, run_server

__all__ = ["create_app", "run_server", "load_config", "ServerConfig", "MountConfig", "__version__"]
