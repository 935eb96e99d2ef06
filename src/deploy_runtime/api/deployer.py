"""Remote deployment endpoint: deploy, undeploy, start and stop artifacts over HTTP."""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse

from deploy_runtime.core.exceptions import (
    ActivationFailedError,
    NotFoundError,
    PathInUseError,
    TransferFailedError,
    UnderlyingActionFailedError,
)
from deploy_runtime.core.models import Artifact
from deploy_runtime.deploy.local import LocalDeployer
from deploy_runtime.utils.logging import bind_deploy_context
from deploy_runtime.utils.paths import context_from_location, location_to_path

logger = structlog.get_logger()

START_FAILED = "Unexpected error when trying to start the webapp"
NOT_FOUND = "Could not find handler for the context"


def get_deployer(request: Request) -> LocalDeployer:
    deployer = getattr(request.app.state, "deployer", None)
    if deployer is None:
        raise RuntimeError("LocalDeployer not initialized")
    return deployer


def _require_bearer(auth_header: str | None, settings_secret: str | None):
    if not settings_secret:
        return  # if not configured, skip auth for local dev
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    token = auth_header.split(" ", 1)[1]
    if token != settings_secret:
        raise HTTPException(status_code=403, detail="Invalid runtime secret")


async def require_auth(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
):
    _require_bearer(authorization, request.app.state.settings.runtime_secret)


router = APIRouter(dependencies=[Depends(require_auth)])


def _ok(message: str) -> PlainTextResponse:
    return PlainTextResponse(f"OK - {message}\n")


def _error(reason: str) -> PlainTextResponse:
    logger.info("Deployer command rejected", reason=reason)
    return PlainTextResponse(f"Error - {reason}\n")


@router.get("/deploy")
async def deploy(
    path: Optional[str] = None,
    war: Optional[str] = None,
    deployer: LocalDeployer = Depends(get_deployer),
) -> PlainTextResponse:
    """Deploy an artifact found on the server's filesystem."""
    if not war:
        return _error("The war variable is not set")

    # Without a path the context comes from the artifact's name
    context = path if path is not None else context_from_location(war)
    bind_deploy_context(path=context, command="deploy")
    logger.debug("Deploying web archive", war=war)

    if deployer.registry.lookup(context) is not None:
        return _error(f"An application is already deployed at this context : {context}")
    if not context.startswith("/"):
        return _error("The path does not start with a forward slash")

    scheme = urlparse(war).scheme
    if len(scheme) > 1 and scheme not in ("file", "jar"):
        return _error(f"Cannot parse URL {war}")
    source = Path(location_to_path(war))

    try:
        await deployer.deploy(Artifact(path=context, location=source))
    except PathInUseError:
        return _error(f"An application is already deployed at this context : {context}")
    except ActivationFailedError:
        return _error(START_FAILED)
    except TransferFailedError as exc:
        return _error(str(exc))

    return _ok(f"Webapp deployed at context {context}")


@router.put("/deploy")
async def deploy_archive(
    request: Request,
    path: Optional[str] = None,
    deployer: LocalDeployer = Depends(get_deployer),
) -> PlainTextResponse:
    """Deploy the archive sent as the request body."""
    bind_deploy_context(path=path, command="deploy")
    logger.debug("Remotely deploying a web archive")

    if path is None:
        return _error("The path variable is not set")
    if not path.startswith("/"):
        return _error("The path variable must start with /")
    if deployer.registry.lookup(path) is not None:
        return _error("The webapp context path is already in use")

    try:
        await deployer.deploy_upload(path, request.stream())
    except PathInUseError:
        return _error("The webapp context path is already in use")
    except ActivationFailedError:
        return _error(START_FAILED)
    except TransferFailedError as exc:
        return _error(str(exc))

    return _ok(f"Webapp deployed at context {path}")


@router.get("/undeploy")
async def undeploy(
    path: Optional[str] = None,
    deployer: LocalDeployer = Depends(get_deployer),
) -> PlainTextResponse:
    bind_deploy_context(path=path, command="undeploy")
    if path is None:
        return _error("The path variable is not set")
    if not path.startswith("/"):
        return _error("Path must start with a forward slash")

    entry = deployer.registry.lookup(path)
    if entry is None:
        return _error(NOT_FOUND)
    try:
        report = await deployer.undeploy(Artifact(path=path, location=entry.location))
    except NotFoundError:
        return _error(NOT_FOUND)
    except UnderlyingActionFailedError:
        return _error("Could not stop context handler")

    return _ok(report.message)


@router.get("/start")
async def start(
    path: Optional[str] = None,
    deployer: LocalDeployer = Depends(get_deployer),
) -> PlainTextResponse:
    bind_deploy_context(path=path, command="start")
    if path is None:
        return _error("The path variable is not set")
    entry = deployer.registry.lookup(path)
    if entry is None:
        return _error(NOT_FOUND)
    try:
        await deployer.start(Artifact(path=path, location=entry.location))
    except NotFoundError:
        return _error(NOT_FOUND)
    except ActivationFailedError:
        return _error(START_FAILED)
    return _ok(f"Webapp at context {path} started")


@router.get("/stop")
async def stop(
    path: Optional[str] = None,
    deployer: LocalDeployer = Depends(get_deployer),
) -> PlainTextResponse:
    bind_deploy_context(path=path, command="stop")
    if path is None:
        return _error("The path variable is not set")
    entry = deployer.registry.lookup(path)
    if entry is None:
        return _error(NOT_FOUND)
    try:
        await deployer.stop(Artifact(path=path, location=entry.location))
    except NotFoundError:
        return _error(NOT_FOUND)
    return _ok(f"Webapp at context {path} stopped")


@router.get("/list")
async def list_webapps(deployer: LocalDeployer = Depends(get_deployer)) -> PlainTextResponse:
    lines = ["OK - Listed webapps"]
    for entry in deployer.list():
        state = "running" if entry.running else "stopped"
        lines.append(f"{entry.path}:{state}:{entry.location}")
    return PlainTextResponse("\n".join(lines) + "\n")


@router.get("/{command:path}")
async def unknown_command(command: str) -> PlainTextResponse:
    return PlainTextResponse(f"Command /{command} is unknown", status_code=400)


@router.put("/{command:path}")
async def unknown_put_command(command: str) -> PlainTextResponse:
    return _error(f"Command /{command} is not recognized with PUT")
