"""Running handle for one deployed artifact."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from starlette.staticfiles import StaticFiles
from starlette.types import ASGIApp

from deploy_runtime.core.exceptions import ActivationFailedError
from deploy_runtime.core.models import ArtifactKind
from deploy_runtime.utils.files import delete_tree, safe_extract_zip
from deploy_runtime.utils.paths import artifact_name

logger = structlog.get_logger()


class ArtifactHandle:
    """Serves an artifact's content while started.

    Archives are extracted into ``work_dir`` on start and the extraction is
    removed on stop; exploded directories are served where they lie.
    """

    def __init__(self, path: str, location: Path, kind: ArtifactKind, work_dir: Path):
        self.path = path
        self.location = location
        self.kind = kind
        self.work_dir = work_dir
        self.app: Optional[ASGIApp] = None
        self._extracted: Optional[Path] = None

    @property
    def running(self) -> bool:
        return self.app is not None

    def start(self) -> None:
        if self.running:
            return
        if not self.location.exists():
            raise ActivationFailedError(f"Artifact not found: {self.location}")

        if self.kind == ArtifactKind.ARCHIVE:
            docroot = self.work_dir / artifact_name(self.path)
            if docroot.exists():
                delete_tree(docroot)
            try:
                safe_extract_zip(self.location, docroot)
            except (ActivationFailedError, OSError):
                # Leave no half-extracted tree behind
                if docroot.exists():
                    delete_tree(docroot)
                raise
            self._extracted = docroot
        else:
            docroot = self.location

        try:
            self.app = StaticFiles(directory=str(docroot), html=True)
        except RuntimeError as exc:
            raise ActivationFailedError(str(exc)) from exc
        logger.info("Artifact started", contextPath=self.path, docroot=str(docroot))

    def stop(self) -> None:
        self.app = None
        if self._extracted is not None:
            delete_tree(self._extracted)
            self._extracted = None
        logger.info("Artifact stopped", contextPath=self.path)

    def __repr__(self) -> str:
        state = "running" if self.running else "stopped"
        return f"<ArtifactHandle {self.path} {state} {self.location}>"
