"""File handling primitives for the deployment directory."""

from __future__ import annotations

import os
import shutil
import zipfile
from pathlib import Path
from typing import AsyncIterator, Iterable

import aiofiles
import structlog

from deploy_runtime.core.exceptions import ActivationFailedError, TransferFailedError

logger = structlog.get_logger()

CHUNK_SIZE = 64 * 1024


def is_within(path: Path, directory: Path) -> bool:
    """True when path resolves strictly inside directory.

    Compares resolved path components, so ``/srv/webapps-old/x`` is not inside
    ``/srv/webapps`` even though the strings share a prefix.
    """
    try:
        resolved = path.resolve()
        base = directory.resolve()
    except OSError:
        return False
    if resolved == base:
        return False
    return base in resolved.parents


def delete_tree(path: Path) -> bool:
    """Delete a file or directory tree without recursion.

    Returns True when nothing is left at path.
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
        return not os.path.lexists(path)
    if not path.exists():
        return True

    # Depth-first walk with an explicit stack; directories are removed once
    # their children are gone.
    stack = [(path, False)]
    while stack:
        current, visited = stack.pop()
        if visited:
            current.rmdir()
            continue
        stack.append((current, True))
        for child in current.iterdir():
            if child.is_dir() and not child.is_symlink():
                stack.append((child, False))
            else:
                child.unlink()
    return not os.path.lexists(path)


def copy_artifact(source: Path, dest: Path) -> int:
    """Copy an archive file or exploded directory to dest. Returns bytes copied."""
    if not source.exists():
        raise TransferFailedError(f"Artifact source not found: {source}")
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        if source.is_dir():
            shutil.copytree(source, dest, dirs_exist_ok=True)
            return sum(f.stat().st_size for f in dest.rglob("*") if f.is_file())
        with open(source, "rb") as src, open(dest, "wb") as dst:
            shutil.copyfileobj(src, dst, CHUNK_SIZE)
        return dest.stat().st_size
    except OSError as exc:
        raise TransferFailedError(f"Copy to {dest} failed: {exc}", location=str(dest)) from exc


async def write_stream(chunks: AsyncIterator[bytes] | Iterable[bytes], dest: Path, max_size_bytes: int) -> int:
    """Stream bytes straight to dest with max-size enforcement.

    Writes go to the final path. On failure the partial file is left in place
    and its location carried on the raised TransferFailedError.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    bytes_written = 0
    try:
        async with aiofiles.open(dest, "wb") as f:
            if hasattr(chunks, "__aiter__"):
                async for chunk in chunks:
                    bytes_written = await _write_chunk(f, chunk, bytes_written, max_size_bytes)
            else:
                for chunk in chunks:
                    bytes_written = await _write_chunk(f, chunk, bytes_written, max_size_bytes)
    except TransferFailedError as exc:
        exc.location = str(dest)
        raise
    except OSError as exc:
        raise TransferFailedError(f"Writing {dest} failed: {exc}", location=str(dest)) from exc
    return bytes_written


async def _write_chunk(f, chunk: bytes, bytes_written: int, max_size_bytes: int) -> int:
    if not chunk:
        return bytes_written
    bytes_written += len(chunk)
    if bytes_written > max_size_bytes:
        raise TransferFailedError("Artifact exceeds maximum allowed size")
    await f.write(chunk)
    return bytes_written


def safe_extract_zip(archive: Path, dest_dir: Path) -> None:
    """Extract an archive to dest_dir, preventing zip-slip.

    Raises ActivationFailedError for unreadable archives and path traversal.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    base = dest_dir.resolve()
    try:
        with zipfile.ZipFile(archive, "r") as zf:
            for member in zf.infolist():
                member_path = Path(member.filename)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise ActivationFailedError("Archive contains unsafe paths (zip-slip)")
                target = (base / member_path).resolve()
                if base not in target.parents and target != base:
                    raise ActivationFailedError("Archive extraction escaped destination (zip-slip)")
                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(member, "r") as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
    except zipfile.BadZipFile as exc:
        raise ActivationFailedError(f"Not a valid archive: {archive}") from exc
