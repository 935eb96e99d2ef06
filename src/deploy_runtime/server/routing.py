"""ASGI dispatcher routing requests to the artifact mounted at the longest matching path."""

from __future__ import annotations

from starlette.responses import PlainTextResponse
from starlette.types import Receive, Scope, Send

from deploy_runtime.server.registry import ContextRegistry


class ContextRouter:
    """Fallback ASGI app of the server; the registry is its routing table."""

    def __init__(self, registry: ContextRegistry):
        self.registry = registry

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        root_path = scope.get("root_path", "")
        path = scope["path"]
        if root_path and path.startswith(root_path):
            route_path = path[len(root_path):] or "/"
        else:
            route_path = path

        entry = self.registry.resolve(route_path)
        if entry is None:
            response = PlainTextResponse("Not Found", status_code=404)
            await response(scope, receive, send)
            return

        handle = entry.handle
        app = handle.app if handle is not None else None
        if app is None:
            response = PlainTextResponse(f"Context {entry.path} is not available", status_code=503)
            await response(scope, receive, send)
            return

        child_scope = dict(scope)
        if entry.path != "/":
            child_scope["root_path"] = root_path + entry.path
        await app(child_scope, receive, send)
