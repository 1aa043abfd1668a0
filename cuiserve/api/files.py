"""
Static directory serving.

StaticDirectory is Starlette's StaticFiles with two additions: an
optional index file per directory and an HTML listing for directories
that have none. Each configured mount gets its own instance.
"""

import errno
import html
import os
import stat
from typing import List, Tuple
from urllib.parse import quote

import anyio
from starlette.exceptions import HTTPException
from starlette.responses import HTMLResponse, Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from ..core.config import MountConfig


ALLOWED_METHODS = ("GET", "HEAD")

LISTING_TEMPLATE = """<html>
<head>
<meta charset="utf-8">
<title>Index of {title}</title>
</head>
<body>
<h1>Index of {title}</h1>
<ul>
{items}
</ul>
</body>
</html>
"""


class StaticDirectory(StaticFiles):
    """Serve one directory, with an index file and/or a listing for directories."""

    def __init__(self, *, directory, index_file=None, show_listing=False):
        super().__init__(directory=directory, check_dir=False)
        self.index_file = index_file
        self.show_listing = show_listing

    @classmethod
    def from_config(cls, mount: MountConfig) -> "StaticDirectory":
        return cls(directory=mount.directory, index_file=mount.index_file, show_listing=mount.show_listing)

    async def check_config(self) -> None:
        # a missing root answers 404 per request instead of failing the app
        return None

    def get_path(self, scope: Scope) -> str:
        """Normalised path with hidden segments rejected and leading '..' dropped."""
        parts = [p for p in super().get_path(scope).split(os.sep) if p not in ("", ".")]
        while parts and parts[0] == "..":
            parts.pop(0)
        for part in parts:
            if part.startswith("."):
                raise HTTPException(status_code=400, detail="Hidden files are not served")
            if "\x00" in part:
                raise HTTPException(status_code=400, detail="Invalid path segment")
        return os.path.join(*parts) if parts else "."

    async def lookup(self, path: str) -> Tuple[str, os.stat_result]:
        try:
            full_path, stat_result = await anyio.to_thread.run_sync(self.lookup_path, path)
        except PermissionError:
            raise HTTPException(status_code=403)
        except OSError as exc:
            if exc.errno == errno.ENAMETOOLONG:
                raise HTTPException(status_code=404)
            raise
        if stat_result is None:
            raise HTTPException(status_code=404)
        return full_path, stat_result

    async def get_response(self, path: str, scope: Scope) -> Response:
        if scope["method"] not in ALLOWED_METHODS:
            raise HTTPException(status_code=405, headers={"Allow": ", ".join(ALLOWED_METHODS)})

        full_path, stat_result = await self.lookup(path)

        if stat.S_ISREG(stat_result.st_mode):
            return self.file_response(full_path, stat_result, scope)

        if not stat.S_ISDIR(stat_result.st_mode):
            raise HTTPException(status_code=404)

        if self.index_file:
            try:
                index_path, index_stat = await self.lookup(os.path.join(path, self.index_file))
            except HTTPException:
                if not self.show_listing:
                    raise
            else:
                if stat.S_ISREG(index_stat.st_mode):
                    return self.file_response(index_path, index_stat, scope)

        if not self.show_listing:
            raise HTTPException(status_code=404, detail="Unable to render directory without index file")

        entries = await anyio.to_thread.run_sync(list_entries, full_path)
        return HTMLResponse(render_listing(directory_url(scope, path), entries))


def list_entries(full_path: str) -> List[Tuple[str, bool]]:
    """Visible (name, is_dir) pairs of a directory, sorted by name."""
    entries = []
    try:
        with os.scandir(full_path) as it:
            for entry in it:
                if entry.name.startswith("."):
                    continue
                try:
                    is_dir = entry.is_dir()
                except OSError:
                    is_dir = False
                entries.append((entry.name, is_dir))
    except PermissionError:
        raise HTTPException(status_code=403)
    except OSError:
        raise HTTPException(status_code=404)
    return sorted(entries)


def quote_name(name: str) -> str:
    # filesystem names may carry surrogate escapes for undecodable bytes
    return quote(os.fsencode(name))


def display_name(name: str) -> str:
    return os.fsencode(name).decode("utf-8", "replace")


def directory_url(scope: Scope, path: str) -> str:
    """Absolute URL of the directory at `path` under this mount, trailing slash included."""
    parts = [] if path == "." else path.split(os.sep)
    prefix = scope.get("root_path", "").rstrip("/")
    return "/".join([prefix] + [quote_name(p) for p in parts]) + "/"


def render_listing(base: str, entries: List[Tuple[str, bool]]) -> str:
    """HTML page linking every (name, is_dir) entry under the URL `base`."""
    items = []
    for name, is_dir in entries:
        suffix = "/" if is_dir else ""
        href = html.escape(base + quote_name(name) + suffix, quote=True)
        items.append(f'<li><a href="{href}">{html.escape(display_name(name))}{suffix}</a></li>')
    title = html.escape(display_name(base))
    return LISTING_TEMPLATE.format(title=title, items="\n".join(items))
