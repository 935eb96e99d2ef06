"""Deployer driving a remote server through its deployment endpoint."""

from __future__ import annotations

import asyncio
import io
import zipfile
from pathlib import Path
from typing import Dict, Optional

import httpx
import structlog

from deploy_runtime.core.exceptions import (
    ActivationFailedError,
    DeployRuntimeError,
    NotFoundError,
    PathInUseError,
    TransferFailedError,
    UnderlyingActionFailedError,
    ValidationError,
)
from deploy_runtime.core.models import Artifact, ArtifactKind, DeploymentOutcome
from deploy_runtime.deploy.base import Deployer
from deploy_runtime.monitor.monitor import DeploymentMonitor

logger = structlog.get_logger()

OK_PREFIX = "OK - "
ERROR_PREFIX = "Error - "


def _error_for(reason: str) -> DeployRuntimeError:
    """Map an ``Error - <reason>`` line back onto the exception taxonomy."""
    lowered = reason.lower()
    if "already in use" in lowered or "already deployed" in lowered:
        return PathInUseError(reason)
    if "could not find" in lowered:
        return NotFoundError(reason)
    if "unexpected error when trying to start" in lowered:
        return ActivationFailedError(reason)
    if "path variable" in lowered or "forward slash" in lowered or "cannot parse" in lowered:
        return ValidationError(reason)
    return UnderlyingActionFailedError(reason)


def _zip_directory(directory: Path) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for file in sorted(directory.rglob("*")):
            if file.is_file():
                zf.write(file, file.relative_to(directory).as_posix())
    return buf.getvalue()


def _artifact_bytes(artifact: Artifact) -> bytes:
    if artifact.content is not None:
        return artifact.content
    if artifact.kind == ArtifactKind.EXPLODED:
        return _zip_directory(artifact.location)
    return artifact.location.read_bytes()


class RemoteDeployer(Deployer):
    """Speaks the deployment endpoint protocol over HTTP.

    Args:
        base_url: URL of the endpoint, e.g. ``http://host:8000/deployer``.
        secret: Bearer token when the endpoint requires one.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.ASGITransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        secret: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers: Dict[str, str] = {}
        if self.secret:
            headers["Authorization"] = f"Bearer {self.secret}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _command(self, method: str, command: str, params: Dict[str, str], content: Optional[bytes] = None) -> str:
        logger.debug("Sending deployer command", url=f"{self.base_url}/{command}", method=method, params=params)
        try:
            async with self._client() as client:
                resp = await client.request(method, f"/{command}", params=params, content=content)
        except httpx.HTTPError as exc:
            raise UnderlyingActionFailedError(f"Deployer endpoint unreachable: {exc}") from exc

        text = resp.text.strip()
        if resp.status_code in (401, 403):
            raise UnderlyingActionFailedError(f"Deployer endpoint refused credentials ({resp.status_code})", code="auth")
        if resp.status_code >= 400:
            raise UnderlyingActionFailedError(f"Deployer endpoint returned {resp.status_code}: {text}")
        if text.startswith(OK_PREFIX):
            return text[len(OK_PREFIX):]
        reason = text[len(ERROR_PREFIX):] if text.startswith(ERROR_PREFIX) else text
        raise _error_for(reason)

    async def deploy(self, artifact: Artifact, monitor: Optional[DeploymentMonitor] = None) -> str:
        loop = asyncio.get_event_loop()
        try:
            payload = await loop.run_in_executor(None, _artifact_bytes, artifact)
        except OSError as exc:
            raise TransferFailedError(f"Could not read artifact: {exc}", location=str(artifact.location)) from exc
        message = await self._command("PUT", "deploy", {"path": artifact.path}, content=payload)
        logger.info("Remote deploy accepted", contextPath=artifact.path, bytes=len(payload))
        if monitor is not None:
            await self._watch(monitor, DeploymentOutcome.DEPLOYED)
        return message

    async def undeploy(self, artifact: Artifact, monitor: Optional[DeploymentMonitor] = None) -> str:
        message = await self._command("GET", "undeploy", {"path": artifact.path})
        logger.info("Remote undeploy accepted", contextPath=artifact.path)
        if monitor is not None:
            await self._watch(monitor, DeploymentOutcome.UNDEPLOYED)
        return message

    async def redeploy(self, artifact: Artifact, monitor: Optional[DeploymentMonitor] = None) -> str:
        try:
            await self.undeploy(artifact)
        except NotFoundError:
            logger.debug("Nothing to undeploy before redeploy", contextPath=artifact.path)
        return await self.deploy(artifact, monitor)

    async def start(self, artifact: Artifact) -> None:
        await self._command("GET", "start", {"path": artifact.path})

    async def stop(self, artifact: Artifact) -> None:
        await self._command("GET", "stop", {"path": artifact.path})

    async def list(self) -> str:
        return await self._command("GET", "list", {})
