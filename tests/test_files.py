"""Tests for static directory resolution and listing."""

import os
from pathlib import Path

import pytest
from starlette.exceptions import HTTPException
from starlette.responses import FileResponse, HTMLResponse
from starlette.staticfiles import NotModifiedResponse, StaticFiles

from cuiserve.api.files import (
    StaticDirectory,
    render_listing,
    directory_url,
)
from cuiserve.core.config import MountConfig


def make_scope(path: str, root_path: str = "", method: str = "GET", headers=None):
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return {
        "type": "http",
        "method": method,
        "path": path,
        "root_path": root_path,
        "query_string": b"",
        "headers": raw_headers,
    }


@pytest.fixture
def site(tmp_path):
    pkg = tmp_path / "pkg"
    (pkg / "sub").mkdir(parents=True)
    (pkg / "foo.txt").write_text("hello")
    (pkg / "sub" / "a.js").write_text("export {}")
    (pkg / ".secret").write_text("nope")

    html = tmp_path / "html"
    (html / "empty").mkdir(parents=True)
    (html / "index.html").write_text("<h1>ok</h1>")
    return tmp_path


def test_is_a_static_files_app():
    assert issubclass(StaticDirectory, StaticFiles)


def test_from_config(tmp_path):
    directory = StaticDirectory.from_config(MountConfig("/cui/", tmp_path, show_listing=True))
    assert directory.directory == tmp_path
    assert directory.show_listing is True
    assert directory.index_file is None


def test_missing_directory_is_not_fatal(tmp_path):
    StaticDirectory(directory=tmp_path / "gone")


# --- get_path ---


@pytest.mark.parametrize("path, expected", [
    ("/cui/", "."),
    ("/cui", "."),
    ("/cui//a/./b/", os.path.join("a", "b")),
    ("/cui/a/../b", "b"),
    ("/cui/../../etc/passwd", os.path.join("etc", "passwd")),
])
def test_get_path(path, expected):
    directory = StaticDirectory(directory=".")
    assert directory.get_path(make_scope(path, root_path="/cui")) == expected


@pytest.mark.parametrize("path", ["/.env", "/a/.git/config", "/nul\x00"])
def test_get_path_rejects(path):
    with pytest.raises(HTTPException) as exc_info:
        StaticDirectory(directory=".").get_path(make_scope(path))
    assert exc_info.value.status_code == 400


# --- listing ---


def test_render_listing_links_and_escapes():
    page = render_listing("/cui/", [("a b.txt", False), ("<x>", False), ("sub", True)])

    assert "<title>Index of /cui/</title>" in page
    assert "<h1>Index of /cui/</h1>" in page
    assert '<li><a href="/cui/a%20b.txt">a b.txt</a></li>' in page
    assert '<li><a href="/cui/%3Cx%3E">&lt;x&gt;</a></li>' in page
    assert '<li><a href="/cui/sub/">sub/</a></li>' in page


def test_render_listing_undecodable_name():
    # os.scandir returns b"caf\xe9.txt" as a surrogate-escaped str
    name = os.fsdecode(b"caf\xe9.txt")
    page = render_listing("/cui/", [(name, False)])

    assert '<a href="/cui/caf%E9.txt">caf\ufffd.txt</a>' in page


def test_render_listing_empty():
    page = render_listing("/cui/", [])
    assert "<ul>\n\n</ul>" in page


def test_directory_url():
    assert directory_url(make_scope("/cui/", root_path="/cui"), ".") == "/cui/"
    assert directory_url(make_scope("/cui/a b/", root_path="/cui"), "a b") == "/cui/a%20b/"
    assert directory_url(make_scope("/x/"), "x") == "/x/"


# --- get_response ---


@pytest.mark.asyncio
async def test_get_response_file(site):
    directory = StaticDirectory(directory=site / "pkg", show_listing=True)
    response = await directory.get_response("foo.txt", make_scope("/cui/foo.txt", "/cui"))

    assert isinstance(response, FileResponse)
    assert Path(response.path) == (site / "pkg" / "foo.txt").resolve()
    assert response.media_type == "text/plain"


@pytest.mark.asyncio
async def test_get_response_not_modified(site):
    directory = StaticDirectory(directory=site / "pkg")
    first = await directory.get_response("foo.txt", make_scope("/foo.txt"))
    scope = make_scope("/foo.txt", headers={"If-None-Match": first.headers["etag"]})

    response = await directory.get_response("foo.txt", scope)

    assert isinstance(response, NotModifiedResponse)


@pytest.mark.asyncio
async def test_get_response_index(site):
    directory = StaticDirectory(directory=site / "html", index_file="index.html")
    response = await directory.get_response(".", make_scope("/"))

    assert isinstance(response, FileResponse)
    assert Path(response.path) == (site / "html" / "index.html").resolve()


@pytest.mark.asyncio
async def test_get_response_directory_without_index(site):
    directory = StaticDirectory(directory=site / "html", index_file="index.html")
    with pytest.raises(HTTPException) as exc_info:
        await directory.get_response("empty", make_scope("/empty/"))
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_get_response_listing(site):
    directory = StaticDirectory(directory=site / "pkg", show_listing=True)
    response = await directory.get_response(".", make_scope("/cui/", "/cui"))

    assert isinstance(response, HTMLResponse)
    body = response.body.decode()
    assert 'href="/cui/foo.txt"' in body
    assert 'href="/cui/sub/"' in body
    assert ".secret" not in body


@pytest.mark.asyncio
async def test_get_response_listing_falls_back_when_index_missing(site):
    directory = StaticDirectory(directory=site / "pkg", index_file="index.html", show_listing=True)
    response = await directory.get_response("sub", make_scope("/cui/sub/", "/cui"))

    assert isinstance(response, HTMLResponse)
    assert 'href="/cui/sub/a.js"' in response.body.decode()


@pytest.mark.asyncio
async def test_get_response_missing(site):
    directory = StaticDirectory(directory=site / "pkg", show_listing=True)
    with pytest.raises(HTTPException) as exc_info:
        await directory.get_response("missing.txt", make_scope("/cui/missing.txt", "/cui"))
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_get_response_rejects_other_methods(site):
    directory = StaticDirectory(directory=site / "pkg")
    with pytest.raises(HTTPException) as exc_info:
        await directory.get_response("foo.txt", make_scope("/foo.txt", method="PUT"))
    assert exc_info.value.status_code == 405
    assert exc_info.value.headers == {"Allow": "GET, HEAD"}


@pytest.mark.asyncio
async def test_get_response_symlink_outside_root(site):
    outside = site / "outside.txt"
    outside.write_text("private")
    (site / "pkg" / "link.txt").symlink_to(outside)

    directory = StaticDirectory(directory=site / "pkg", show_listing=True)
    with pytest.raises(HTTPException) as exc_info:
        await directory.get_response("link.txt", make_scope("/cui/link.txt", "/cui"))
    assert exc_info.value.status_code == 404
