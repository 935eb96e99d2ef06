"""Utilities for mount paths and artifact locations."""

from pathlib import Path
from urllib.parse import unquote, urlparse

ROOT_NAME = "ROOT"


def normalize_mount_path(raw_path: str | None) -> str:
    """Normalize a mount path.
    - Ensure it begins with '/'
    - Remove trailing slash except when it is just '/'
    """
    path = (raw_path or "/").strip()
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path


def artifact_name(mount_path: str) -> str:
    """File name stem used for a mount path inside the deployment directory."""
    if mount_path == "/":
        return ROOT_NAME
    return mount_path.lstrip("/").replace("/", "#")


def context_from_location(location: str) -> str:
    """Mount path derived from an artifact file name (``foo.war`` -> ``/foo``)."""
    name = Path(location_to_path(location)).name
    stem = name.rsplit(".", 1)[0] if "." in name else name
    if stem == ROOT_NAME or not stem:
        return "/"
    return "/" + stem.replace("#", "/")


def location_to_path(location: str) -> str:
    """Strip ``jar:`` and ``file:`` wrappers from an artifact location."""
    if location.startswith("jar:"):
        location = location[len("jar:"):]
        if location.endswith("!/"):
            location = location[: -len("!/")]
    if location.startswith("file:"):
        parsed = urlparse(location)
        location = unquote(parsed.path)
    return location


def match_context(request_path: str, mount_paths) -> str | None:
    """Longest mount path that prefixes request_path on a segment boundary."""
    best = None
    for mount in mount_paths:
        if mount == "/":
            hit = True
        else:
            hit = request_path == mount or request_path.startswith(mount + "/")
        if hit and (best is None or len(mount) > len(best)):
            best = mount
    return best
