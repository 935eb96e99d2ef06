import zipfile
from pathlib import Path

import pytest

from deploy_runtime.core.exceptions import ActivationFailedError, TransferFailedError
from deploy_runtime.utils.files import copy_artifact, delete_tree, is_within, safe_extract_zip, write_stream
from deploy_runtime.utils.paths import (
    artifact_name,
    context_from_location,
    location_to_path,
    normalize_mount_path,
)


def test_is_within_true_containment(tmp_path: Path):
    webapps = tmp_path / "webapps"
    (webapps / "app").mkdir(parents=True)
    assert is_within(webapps / "app", webapps)
    assert is_within(webapps / "app.war", webapps)
    assert not is_within(webapps, webapps)


def test_is_within_rejects_sibling_sharing_prefix(tmp_path: Path):
    webapps = tmp_path / "webapps"
    sibling = tmp_path / "webapps-old" / "app.war"
    sibling.parent.mkdir(parents=True)
    sibling.write_bytes(b"x")
    webapps.mkdir()

    # A plain string-prefix check would accept this one
    assert str(sibling).startswith(str(webapps))
    assert not is_within(sibling, webapps)


def test_is_within_rejects_traversal(tmp_path: Path):
    webapps = tmp_path / "webapps"
    webapps.mkdir()
    assert not is_within(webapps / ".." / "elsewhere.war", webapps)


def test_delete_tree_handles_deep_directories(tmp_path: Path):
    root = tmp_path / "exploded"
    current = root
    for i in range(150):
        current = current / f"d{i}"
    current.mkdir(parents=True)
    (current / "leaf.txt").write_text("leaf")
    (root / "top.txt").write_text("top")

    assert delete_tree(root) is True
    assert not root.exists()


def test_delete_tree_single_file(tmp_path: Path):
    f = tmp_path / "app.war"
    f.write_bytes(b"data")
    assert delete_tree(f) is True
    assert not f.exists()


def test_copy_artifact_file_and_directory(tmp_path: Path):
    src_file = tmp_path / "src.war"
    src_file.write_bytes(b"archive")
    assert copy_artifact(src_file, tmp_path / "out" / "app.war") == 7

    src_dir = tmp_path / "site"
    (src_dir / "css").mkdir(parents=True)
    (src_dir / "index.html").write_text("hi")
    (src_dir / "css" / "a.css").write_text("body{}")
    copy_artifact(src_dir, tmp_path / "out" / "site")
    assert (tmp_path / "out" / "site" / "css" / "a.css").read_text() == "body{}"


def test_copy_artifact_missing_source(tmp_path: Path):
    with pytest.raises(TransferFailedError):
        copy_artifact(tmp_path / "nope.war", tmp_path / "out.war")


@pytest.mark.asyncio
async def test_write_stream_enforces_size_and_leaves_partial_file(tmp_path: Path):
    dest = tmp_path / "big.war"
    with pytest.raises(TransferFailedError) as exc_info:
        await write_stream([b"a" * 10, b"b" * 10], dest, max_size_bytes=15)

    assert exc_info.value.location == str(dest)
    assert dest.read_bytes() == b"a" * 10


@pytest.mark.asyncio
async def test_write_stream_async_chunks(tmp_path: Path):
    async def chunks():
        yield b"hello "
        yield b""
        yield b"world"

    dest = tmp_path / "app.war"
    assert await write_stream(chunks(), dest, max_size_bytes=1024) == 11
    assert dest.read_bytes() == b"hello world"


def test_safe_extract_rejects_zip_slip(tmp_path: Path):
    archive = tmp_path / "bad.war"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("../evil.txt", b"oops")
    with pytest.raises(ActivationFailedError):
        safe_extract_zip(archive, tmp_path / "out")
    assert not (tmp_path / "evil.txt").exists()


def test_safe_extract_rejects_non_archive(tmp_path: Path):
    archive = tmp_path / "junk.war"
    archive.write_bytes(b"not a zip")
    with pytest.raises(ActivationFailedError):
        safe_extract_zip(archive, tmp_path / "out")


def test_mount_path_helpers():
    assert normalize_mount_path("foo/") == "/foo"
    assert normalize_mount_path(None) == "/"
    assert artifact_name("/") == "ROOT"
    assert artifact_name("/shop/admin") == "shop#admin"
    assert context_from_location("/tmp/foo.war") == "/foo"
    assert context_from_location("/srv/webapps/ROOT.war") == "/"
    assert context_from_location("/srv/webapps/shop#admin.war") == "/shop/admin"
    assert context_from_location("file:/tmp/bar.war") == "/bar"
    assert location_to_path("jar:file:/tmp/app.war!/") == "/tmp/app.war"
