"""Deployer contract shared by the local and remote implementations."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog

from deploy_runtime.core.exceptions import DeploymentTimedOutError
from deploy_runtime.core.models import Artifact, DeploymentOutcome
from deploy_runtime.monitor.monitor import DeploymentMonitor, OutcomeRecorder

logger = structlog.get_logger()


class Deployer(ABC):
    """Unit operations on an artifact.

    Operations accepting a DeploymentMonitor perform their action first, then
    run the monitor on an executor thread and return only once it has
    delivered its terminal notification.
    """

    @abstractmethod
    async def deploy(self, artifact: Artifact, monitor: Optional[DeploymentMonitor] = None) -> Any:
        ...

    @abstractmethod
    async def undeploy(self, artifact: Artifact, monitor: Optional[DeploymentMonitor] = None) -> Any:
        ...

    @abstractmethod
    async def redeploy(self, artifact: Artifact, monitor: Optional[DeploymentMonitor] = None) -> Any:
        ...

    @abstractmethod
    async def start(self, artifact: Artifact) -> None:
        ...

    @abstractmethod
    async def stop(self, artifact: Artifact) -> None:
        ...

    async def _watch(self, monitor: DeploymentMonitor, expected: DeploymentOutcome) -> DeploymentOutcome:
        """Run the monitor to completion and fail unless it reported ``expected``."""
        recorder = OutcomeRecorder()
        monitor.register_listener(recorder)

        logger.debug(
            "Waiting for deployment monitor",
            url=monitor.deployable_name,
            expected=expected.value,
            timeout_ms=monitor.get_timeout(),
        )
        # Probes block; keep them off the event loop
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, monitor.run)

        outcome = recorder.outcome
        if outcome != expected:
            raise DeploymentTimedOutError(
                f"{monitor.deployable_name} not {expected.value} after {monitor.get_timeout()} ms",
                code="timeout",
            )
        logger.info("Deployment confirmed by monitor", url=monitor.deployable_name, outcome=outcome.value)
        return outcome
