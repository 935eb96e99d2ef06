"""Authoritative mapping of mount path to running artifact handle."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from deploy_runtime.core.exceptions import ContextNotFoundError, DuplicatePathError
from deploy_runtime.core.models import ArtifactKind
from deploy_runtime.server.handles import ArtifactHandle
from deploy_runtime.utils.paths import match_context

logger = structlog.get_logger()


@dataclass
class ContextEntry:
    path: str
    location: Path
    kind: ArtifactKind = ArtifactKind.ARCHIVE
    handle: Optional[ArtifactHandle] = None  # None while the path is only reserved
    removing: bool = False  # set by the one undeploy that owns this entry

    @property
    def reserved(self) -> bool:
        return self.handle is None

    @property
    def running(self) -> bool:
        return self.handle is not None and self.handle.running


class ContextRegistry:
    """What is deployed where, for one running server.

    insert() and remove() are the only mutations and both run under a single
    lock, so of two concurrent inserts for one path exactly one succeeds.
    """

    def __init__(self):
        self._entries: Dict[str, ContextEntry] = {}
        self._lock = threading.Lock()

    def lookup(self, path: str) -> Optional[ContextEntry]:
        with self._lock:
            return self._entries.get(path)

    def insert(self, entry: ContextEntry) -> ContextEntry:
        with self._lock:
            if entry.path in self._entries:
                raise DuplicatePathError(f"The webapp context path is already in use: {entry.path}")
            self._entries[entry.path] = entry
        logger.debug("Context registered", contextPath=entry.path, location=str(entry.location))
        return entry

    def claim(self, path: str) -> ContextEntry:
        """Mark the running entry at path for removal.

        Of several concurrent claims for one entry only the first succeeds;
        reservations and entries already claimed count as not found. The
        entry stays registered, so the path cannot be reused until the
        claimant calls remove().
        """
        with self._lock:
            entry = self._entries.get(path)
            if entry is None or entry.reserved or entry.removing:
                raise ContextNotFoundError(f"Could not find handler for the context: {path}")
            entry.removing = True
        return entry

    def unclaim(self, entry: ContextEntry) -> None:
        with self._lock:
            entry.removing = False

    def remove(self, path: str, expected: Optional[ContextEntry] = None) -> ContextEntry:
        """Drop the entry at path.

        With ``expected`` the entry is only dropped while it is still that
        exact entry, so a stale caller never removes a newer deployment.
        """
        with self._lock:
            entry = self._entries.get(path)
            if entry is not None and (expected is None or entry is expected):
                del self._entries[path]
            else:
                entry = None
        if entry is None:
            raise ContextNotFoundError(f"Could not find handler for the context: {path}")
        logger.debug("Context removed", contextPath=path)
        return entry

    def resolve(self, request_path: str) -> Optional[ContextEntry]:
        """Entry whose mount path is the longest prefix of request_path."""
        with self._lock:
            mount = match_context(request_path, self._entries.keys())
            return self._entries.get(mount) if mount is not None else None

    def entries(self) -> List[ContextEntry]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda e: e.path)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
