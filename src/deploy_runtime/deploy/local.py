"""Deployer acting directly on the running server's registry and deployment directory."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Iterable, List, Optional

import structlog

from deploy_runtime.core.config import Settings
from deploy_runtime.core.exceptions import (
    ActivationFailedError,
    ConfigurationError,
    ContextNotFoundError,
    DeployRuntimeError,
    NotFoundError,
    TransferFailedError,
    UnderlyingActionFailedError,
    ValidationError,
)
from deploy_runtime.core.models import Artifact, ArtifactKind, DeploymentOutcome, UndeployReport
from deploy_runtime.deploy.base import Deployer
from deploy_runtime.monitor.monitor import DeploymentMonitor
from deploy_runtime.server.handles import ArtifactHandle
from deploy_runtime.server.registry import ContextEntry, ContextRegistry
from deploy_runtime.utils.files import copy_artifact, delete_tree, is_within, write_stream
from deploy_runtime.utils.paths import artifact_name, context_from_location

logger = structlog.get_logger()


class LocalDeployer(Deployer):
    """Deploys into the managed deployment directory of this server instance.

    Every deploy reserves its mount path in the registry before any byte is
    written, so concurrent deploys to one path never interleave their writes.
    """

    def __init__(self, registry: ContextRegistry, settings: Settings):
        self.registry = registry
        self.settings = settings
        self.deploy_dir = settings.deploy_path
        self.work_dir = settings.work_path
        try:
            self.deploy_dir.mkdir(parents=True, exist_ok=True)
            self.work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(f"Deployment directories are not usable: {exc}") from exc

    def artifact_location(self, path: str, kind: ArtifactKind = ArtifactKind.ARCHIVE) -> Path:
        """Final on-disk location of an artifact deployed at path."""
        name = artifact_name(path)
        if kind == ArtifactKind.ARCHIVE:
            name += self.settings.archive_suffix
        return self.deploy_dir / name

    async def deploy(
        self,
        artifact: Artifact,
        monitor: Optional[DeploymentMonitor] = None,
        *,
        in_place: bool = False,
    ) -> ContextEntry:
        """Install, register and start an artifact.

        With ``in_place`` the artifact's location is registered as is instead
        of being copied into the deployment directory.
        """
        if in_place:
            if artifact.location is None:
                raise ValidationError("In-place deployment needs an artifact location")
            location = artifact.location
        else:
            location = self.artifact_location(artifact.path, artifact.kind)

        entry = self._reserve(artifact.path, location, artifact.kind)
        if not in_place:
            if artifact.content is not None:
                await self._transfer(entry, [artifact.content])
            else:
                await self._copy(entry, artifact.location)
        await self._activate(entry)

        if monitor is not None:
            await self._watch(monitor, DeploymentOutcome.DEPLOYED)
        return entry

    async def deploy_upload(
        self,
        path: str,
        chunks: AsyncIterator[bytes] | Iterable[bytes],
        monitor: Optional[DeploymentMonitor] = None,
    ) -> ContextEntry:
        """Deploy an archive whose bytes arrive as a stream."""
        if not path or not path.startswith("/"):
            raise ValidationError("The path variable must start with /")
        entry = self._reserve(path, self.artifact_location(path), ArtifactKind.ARCHIVE)
        await self._transfer(entry, chunks)
        await self._activate(entry)

        if monitor is not None:
            await self._watch(monitor, DeploymentOutcome.DEPLOYED)
        return entry

    async def undeploy(self, artifact: Artifact, monitor: Optional[DeploymentMonitor] = None) -> UndeployReport:
        """Stop the handle, delete the artifact if it is ours to delete and drop the registry entry.

        The entry is claimed first, so a concurrent or stale undeploy of the
        same path fails with NotFoundError instead of acting on it. The path
        stays registered until the files are gone; a deploy racing this call
        gets PathInUseError rather than having its fresh artifact deleted.
        """
        entry = self.registry.claim(artifact.path)

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, entry.handle.stop)
        except OSError as exc:
            self.registry.unclaim(entry)
            logger.warning("Could not stop context handler", contextPath=entry.path, error=str(exc))
            raise UnderlyingActionFailedError("Could not stop context handler") from exc

        # Files go only after the handle has stopped using them
        report = await loop.run_in_executor(None, self._remove_from_disk, entry)
        self.registry.remove(entry.path, expected=entry)
        logger.info("Artifact undeployed", contextPath=entry.path, removed=report.removed)

        if monitor is not None:
            await self._watch(monitor, DeploymentOutcome.UNDEPLOYED)
        return report

    async def redeploy(self, artifact: Artifact, monitor: Optional[DeploymentMonitor] = None) -> ContextEntry:
        try:
            await self.undeploy(artifact)
        except NotFoundError:
            logger.debug("Nothing to undeploy before redeploy", contextPath=artifact.path)
        return await self.deploy(artifact, monitor)

    async def start(self, artifact: Artifact) -> None:
        entry = self._running_entry(artifact.path)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, entry.handle.start)
        except (DeployRuntimeError, OSError) as exc:
            logger.warning("Unexpected error when trying to start the webapp",
                           contextPath=entry.path, location=str(entry.location), error=str(exc))
            raise ActivationFailedError(f"Unexpected error when trying to start the webapp: {exc}") from exc

    async def stop(self, artifact: Artifact) -> None:
        entry = self._running_entry(artifact.path)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, entry.handle.stop)
        except OSError as exc:
            logger.warning("Could not stop context handler", contextPath=entry.path, error=str(exc))
            raise UnderlyingActionFailedError("Could not stop context handler") from exc

    def list(self) -> List[ContextEntry]:
        return self.registry.entries()

    async def deploy_existing(self) -> List[str]:
        """Deploy every artifact already present in the deployment directory."""
        deployed = []
        for child in sorted(self.deploy_dir.iterdir()):
            if child.name.startswith("."):
                continue
            if child.is_file() and not child.name.endswith(self.settings.archive_suffix):
                continue
            path = context_from_location(str(child))
            if path in self.registry:
                continue
            try:
                await self.deploy(Artifact(path=path, location=child), in_place=True)
                deployed.append(path)
            except DeployRuntimeError as exc:
                logger.warning("Skipping existing artifact", location=str(child), error=str(exc))
        if deployed:
            logger.info("Deployed existing artifacts", contextPaths=deployed)
        return deployed

    async def shutdown_all(self) -> None:
        """Stop every running handle."""
        loop = asyncio.get_event_loop()
        for entry in self.registry.entries():
            if entry.running:
                try:
                    await loop.run_in_executor(None, entry.handle.stop)
                except OSError:
                    logger.exception("Shutdown failed", contextPath=entry.path)

    def _running_entry(self, path: str) -> ContextEntry:
        entry = self.registry.lookup(path)
        if entry is None or entry.reserved or entry.removing:
            raise NotFoundError("Could not find handler for the context")
        return entry

    def _reserve(self, path: str, location: Path, kind: ArtifactKind) -> ContextEntry:
        entry = self.registry.insert(ContextEntry(path=path, location=location, kind=kind))
        logger.debug("Context reserved", contextPath=path, location=str(location))
        return entry

    def _release(self, entry: ContextEntry) -> None:
        try:
            self.registry.remove(entry.path, expected=entry)
        except ContextNotFoundError:
            logger.debug("Reservation already released", contextPath=entry.path)

    async def _transfer(self, entry: ContextEntry, chunks) -> None:
        transferred = False
        try:
            size = await write_stream(chunks, entry.location, self.settings.max_artifact_size_bytes)
            transferred = True
        except TransferFailedError as exc:
            logger.warning("Artifact transfer failed, partial file left on disk",
                           contextPath=entry.path, location=exc.location, error=str(exc))
            raise
        except Exception as exc:
            # e.g. the client went away mid-upload
            logger.warning("Artifact transfer interrupted, partial file left on disk",
                           contextPath=entry.path, location=str(entry.location), error=str(exc))
            raise TransferFailedError(f"Transfer interrupted: {exc}", location=str(entry.location)) from exc
        finally:
            if not transferred:
                self._release(entry)
        logger.debug("Artifact transferred", contextPath=entry.path, bytes=size)

    async def _copy(self, entry: ContextEntry, source: Path) -> None:
        loop = asyncio.get_event_loop()
        try:
            size = await loop.run_in_executor(None, copy_artifact, source, entry.location)
        except TransferFailedError as exc:
            self._release(entry)
            logger.warning("Artifact copy failed", contextPath=entry.path, source=str(source), error=str(exc))
            raise
        logger.debug("Artifact copied", contextPath=entry.path, source=str(source), bytes=size)

    async def _activate(self, entry: ContextEntry) -> None:
        handle = ArtifactHandle(entry.path, entry.location, entry.kind, self.work_dir)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, handle.start)
        except (DeployRuntimeError, OSError) as exc:
            self._release(entry)
            logger.warning("Unexpected error when trying to start the webapp",
                           contextPath=entry.path, location=str(entry.location), error=str(exc))
            raise ActivationFailedError(f"Unexpected error when trying to start the webapp: {exc}") from exc
        entry.handle = handle
        logger.info("Webapp deployed", contextPath=entry.path, location=str(entry.location))

    def _remove_from_disk(self, entry: ContextEntry) -> UndeployReport:
        location = entry.location
        report = UndeployReport(path=entry.path, location=str(location))
        if not location.exists():
            report.warning = "Can't find a valid file for this context path"
            logger.warning(report.warning, contextPath=entry.path, location=str(location))
        elif not is_within(location, self.deploy_dir):
            report.warning = f"{location} is outside {self.deploy_dir}; left on disk"
            logger.warning("Artifact outside deployment directory left on disk",
                           contextPath=entry.path, location=str(location), deploy_dir=str(self.deploy_dir))
        else:
            try:
                report.removed = delete_tree(location)
            except OSError as exc:
                logger.warning("Could not delete artifact", contextPath=entry.path, error=str(exc))
            if not report.removed:
                report.warning = "Webapp couldn't be removed from the filesystem"
        return report
