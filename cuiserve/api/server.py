"""
cuiserve HTTP server

FastAPI app serving the configured static directories, wrapped in access
logging, run by uvicorn on a pre-bound loopback socket.
"""

import logging
import signal
import socket
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.config import ServerConfig, ConfigError, load_config
from ..core.logging import init_logging
from .files import StaticDirectory, ALLOWED_METHODS
from .middleware import AccessLogMiddleware


logger = logging.getLogger(__name__)


class BindError(RuntimeError):
    """The listening address could not be bound."""

    def __init__(self, host: str, port: int, cause: OSError):
        super().__init__(f"failed to bind {host}:{port}: {cause.strerror or cause}")
        self.errno = cause.errno
        self.host = host
        self.port = port


async def plain_text_error(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    """Render HTTP errors as '404 Not Found' style text."""
    try:
        phrase = HTTPStatus(exc.status_code).phrase
    except ValueError:
        phrase = ""
    body = f"{exc.status_code} {phrase}".strip()
    if exc.detail and exc.detail != phrase:
        body += f": {exc.detail}"
    return PlainTextResponse(body + "\n", status_code=exc.status_code, headers=exc.headers)


def _slash_redirect(prefix: str):
    async def redirect():
        return RedirectResponse(prefix + "/")
    return redirect


def create_app(config: Optional[ServerConfig] = None) -> FastAPI:
    """Build the application; mounts are tried in declared order, first match wins."""
    config = config or ServerConfig()

    app = FastAPI(title="cuiserve", docs_url=None, redoc_url=None, openapi_url=None)

    for mount in config.mounts:
        if not mount.directory.is_dir():
            logger.warning("%s: directory %s does not exist", mount.path, mount.directory)
        if mount.path != "/":
            # '/cui' itself is not covered by the '/cui' mount
            app.add_api_route(mount.path, _slash_redirect(mount.path), methods=list(ALLOWED_METHODS),
                              include_in_schema=False)
        app.mount(mount.path, StaticDirectory.from_config(mount))

    app.add_exception_handler(StarletteHTTPException, plain_text_error)
    app.add_middleware(AccessLogMiddleware)
    return app


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket up front so a busy port fails fast."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise BindError(host, port, e) from e
    sock.set_inheritable(True)
    return sock


def run_server(config: Optional[ServerConfig] = None) -> None:
    """Run the server until it is stopped by a signal."""
    import uvicorn

    config = config or load_config()
    sock = bind_socket(config.host, config.port)

    logger.info("starting HTTP server at %s", config.url)

    uv_config = uvicorn.Config(
        create_app(config),
        log_config=None,
        access_log=False,
    )
    server = uvicorn.Server(uv_config)
    try:
        server.run(sockets=[sock])
    finally:
        sock.close()


def main() -> int:
    """Main entry point. No flags; everything comes from the environment."""
    try:
        config = load_config()
    except ConfigError as e:
        init_logging()
        logger.error("invalid configuration: %s", e)
        return 1

    init_logging(config.log_env, config.default_log_filter)

    # uvicorn re-raises the signal that stopped it; SIGTERM then ends up
    # as KeyboardInterrupt like SIGINT does
    previous = signal.signal(signal.SIGTERM, signal.default_int_handler)
    try:
        run_server(config)
    except BindError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("shutting down")
    finally:
        signal.signal(signal.SIGTERM, previous)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
