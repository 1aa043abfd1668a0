"""
Access logging.

Pure ASGI middleware so streamed file bodies pass through untouched. One
line per request, written once the response is done (or the client went
away):

    127.0.0.1 "GET /cui/foo.txt HTTP/1.1" 200 5 "-" "curl/8.5.0" 0.000412
"""

import logging
import time

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send


ACCESS_LOGGER = "cuiserve.access"


class AccessLogMiddleware:
    def __init__(self, app: ASGIApp, logger_name: str = ACCESS_LOGGER):
        self.app = app
        self.logger = logging.getLogger(logger_name)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status = None
        content_length = None
        body_size = 0
        body_seen = False

        async def send_wrapper(message: Message) -> None:
            nonlocal status, content_length, body_size, body_seen
            if message["type"] == "http.response.start":
                status = message["status"]
                content_length = Headers(raw=message.get("headers", [])).get("content-length")
            elif message["type"] == "http.response.body":
                body_seen = True
                body_size += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            size = body_sent(scope, body_seen, body_size, content_length)
            self.logger.info(format_access_line(scope, status or 500, size, time.perf_counter() - start))


def format_access_line(scope: Scope, status: int, size, elapsed: float) -> str:
    client = scope.get("client")
    remote = client[0] if client else "-"

    raw_path = scope.get("raw_path")
    target = raw_path.decode("latin-1") if raw_path else scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        target += "?" + query.decode("latin-1")

    headers = Headers(scope=scope)
    request_line = f'{scope.get("method", "-")} {target} HTTP/{scope.get("http_version", "1.1")}'
    return '%s "%s" %d %s "%s" "%s" %.6f' % (
        remote,
        request_line,
        status,
        size,
        headers.get("referer", "-"),
        headers.get("user-agent", "-"),
        elapsed,
    )


def body_sent(scope: Scope, body_seen: bool, body_size: int, content_length) -> int:
    """Bytes of body sent; content-length only counts when the body bypassed send()."""
    if body_seen or content_length is None or scope.get("method") == "HEAD":
        return body_size
    try:
        return int(content_length)
    except ValueError:
        return body_size
