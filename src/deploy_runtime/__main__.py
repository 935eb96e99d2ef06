"""CLI entrypoints (deploy-runtime serve, wait, push, remove)."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from deploy_runtime.core.config import Settings
from deploy_runtime.core.exceptions import DeployRuntimeError
from deploy_runtime.core.models import Artifact, DeploymentOutcome
from deploy_runtime.monitor.monitor import DeploymentMonitor
from deploy_runtime.utils.paths import normalize_mount_path


def _monitor_from_args(args, expect: DeploymentOutcome) -> DeploymentMonitor | None:
    if not getattr(args, "ping_url", None):
        return None
    return DeploymentMonitor(
        args.ping_url,
        timeout_ms=args.timeout_ms,
        contains=args.contains,
        poll_interval_ms=args.poll_interval_ms,
        expect=expect,
    )


def _add_monitor_args(cmd: argparse.ArgumentParser, settings: Settings) -> None:
    # Defaults come from MONITOR_TIMEOUT_MS / MONITOR_POLL_INTERVAL_MS
    cmd.add_argument("--timeout-ms", type=int, default=settings.monitor_timeout_ms)
    cmd.add_argument("--poll-interval-ms", type=int, default=settings.monitor_poll_interval_ms)
    cmd.add_argument("--contains", default=None, help="Substring the response body must contain")


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    if settings is None:
        settings = Settings()

    parser = argparse.ArgumentParser(prog="deploy-runtime", description="Deploy Runtime CLI")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("serve", help="Run the hosting server")

    cmd_wait = sub.add_parser("wait", help="Wait until a URL answers")
    cmd_wait.add_argument("ping_url")
    cmd_wait.add_argument("--undeployed", action="store_true", help="Wait until the URL stops answering")
    _add_monitor_args(cmd_wait, settings)

    cmd_push = sub.add_parser("push", help="Deploy an artifact to a remote server")
    cmd_push.add_argument("artifact", help="Archive file or exploded directory")
    cmd_push.add_argument("--url", required=True, help="Deployer endpoint, e.g. http://host:8000/deployer")
    cmd_push.add_argument("--path", default=None, help="Mount path (default: from the artifact name)")
    cmd_push.add_argument("--secret", default=None)
    cmd_push.add_argument("--redeploy", action="store_true")
    cmd_push.add_argument("--ping-url", default=None, help="Confirm the deployment by polling this URL")
    _add_monitor_args(cmd_push, settings)

    cmd_remove = sub.add_parser("remove", help="Undeploy an artifact from a remote server")
    cmd_remove.add_argument("--url", required=True)
    cmd_remove.add_argument("--path", required=True)
    cmd_remove.add_argument("--secret", default=None)
    cmd_remove.add_argument("--ping-url", default=None)
    _add_monitor_args(cmd_remove, settings)

    args = parser.parse_args(argv)

    if args.cmd == "serve":
        from deploy_runtime.main import run
        run()
        return 0

    if args.cmd == "wait":
        expect = DeploymentOutcome.UNDEPLOYED if args.undeployed else DeploymentOutcome.DEPLOYED
        monitor = DeploymentMonitor(
            args.ping_url,
            timeout_ms=args.timeout_ms,
            contains=args.contains,
            poll_interval_ms=args.poll_interval_ms,
            expect=expect,
        )
        outcome = monitor.run()
        print(f"{args.ping_url} {outcome.value}")
        return 0 if outcome == expect else 1

    if args.cmd in ("push", "remove"):
        from deploy_runtime.deploy.remote import RemoteDeployer
        deployer = RemoteDeployer(args.url, secret=args.secret)
        try:
            if args.cmd == "push":
                path = normalize_mount_path(args.path) if args.path else None
                artifact = Artifact(path=path, location=Path(args.artifact))
                monitor = _monitor_from_args(args, DeploymentOutcome.DEPLOYED)
                op = deployer.redeploy if args.redeploy else deployer.deploy
                message = asyncio.run(op(artifact, monitor))
            else:
                artifact = Artifact(path=normalize_mount_path(args.path), content=b"")
                monitor = _monitor_from_args(args, DeploymentOutcome.UNDEPLOYED)
                message = asyncio.run(deployer.undeploy(artifact, monitor))
        except DeployRuntimeError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1
        print(f"OK - {message}")
        return 0

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
