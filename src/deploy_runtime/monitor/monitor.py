"""Deployment monitor that polls a URL until an artifact answers or the timeout expires."""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

import structlog

from deploy_runtime.core.exceptions import MonitorNotificationError, MonitorStateError
from deploy_runtime.core.models import DeploymentOutcome, MonitorState, ProbeResult, ProbeTarget
from deploy_runtime.monitor.probe import probe as http_probe

logger = structlog.get_logger()

DEFAULT_TIMEOUT_MS = 20000
DEFAULT_POLL_INTERVAL_MS = 500


class MonitorListener:
    """Receives the single terminal event of a DeploymentMonitor."""

    def on_deployed(self) -> None:
        pass

    def on_undeployed(self) -> None:
        pass


class OutcomeRecorder(MonitorListener):
    """Listener that records the terminal event and lets a caller wait for it."""

    def __init__(self):
        self.outcome: Optional[DeploymentOutcome] = None
        self._event = threading.Event()

    def on_deployed(self) -> None:
        self.outcome = DeploymentOutcome.DEPLOYED
        self._event.set()

    def on_undeployed(self) -> None:
        self.outcome = DeploymentOutcome.UNDEPLOYED
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[DeploymentOutcome]:
        self._event.wait(timeout)
        return self.outcome


class DeploymentMonitor:
    """Single-use monitor deciding whether an artifact is deployed by pinging a URL.

    The artifact counts as serving when the probe succeeds and, if ``contains``
    is set, the response body contains it. With the default
    ``expect=DEPLOYED`` polling stops at the first serving probe; with
    ``expect=UNDEPLOYED`` it stops at the first non-serving probe. When the
    timeout runs out first, the opposite outcome is reported. Either way every
    registered listener receives exactly one notification, in registration
    order.

    Args:
        url: URL to ping.
        timeout_ms: Budget after which monitoring stops.
        contains: Substring the response body must contain.
        poll_interval_ms: Delay between two probes.
        expect: Outcome the caller is waiting for.
        probe: ``probe(target, timeout_ms) -> ProbeResult`` callable.
        clock: Monotonic clock in seconds.
        sleep: Sleep function taking seconds.
    """

    def __init__(
        self,
        url: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        contains: Optional[str] = None,
        *,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        expect: DeploymentOutcome = DeploymentOutcome.DEPLOYED,
        probe: Callable[[ProbeTarget, int], ProbeResult] = http_probe,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if timeout_ms <= 0 or poll_interval_ms <= 0:
            raise ValueError("timeout_ms and poll_interval_ms must be positive")
        self.target = ProbeTarget(url=url, contains=contains or None)
        self.timeout = timeout_ms
        self.poll_interval = poll_interval_ms
        self.expect = expect
        self._probe = probe
        self._clock = clock
        self._sleep = sleep
        self._listeners: List[MonitorListener] = []
        self._state = MonitorState.NOT_STARTED
        self._lock = threading.Lock()

    @property
    def deployable_name(self) -> str:
        return self.target.url

    @property
    def state(self) -> MonitorState:
        return self._state

    def get_timeout(self) -> int:
        return self.timeout

    def register_listener(self, listener: MonitorListener) -> None:
        with self._lock:
            if self._state != MonitorState.NOT_STARTED:
                raise MonitorStateError(
                    f"Cannot register a listener on a monitor in state {self._state.value}"
                )
            self._listeners.append(listener)

    def start(self) -> threading.Thread:
        """Run the poll loop on a daemon thread."""
        thread = threading.Thread(
            target=self.run,
            name=f"deployment-monitor-{self.target.url}",
            daemon=True,
        )
        thread.start()
        return thread

    def _is_serving(self, result: ProbeResult) -> bool:
        if not result.success:
            return False
        if self.target.contains:
            return self.target.contains in (result.body or "")
        return True

    def run(self) -> DeploymentOutcome:
        with self._lock:
            if self._state != MonitorState.NOT_STARTED:
                raise MonitorStateError("Monitor has already been run")
            self._state = MonitorState.POLLING
            listeners = list(self._listeners)

        logger.debug(
            "Checking URL for status",
            url=self.target.url,
            timeout_ms=self.timeout,
            expect=self.expect.value,
        )

        want_serving = self.expect == DeploymentOutcome.DEPLOYED
        start = self._clock()
        attempts = 0
        while True:
            remaining_ms = self.timeout - (self._clock() - start) * 1000
            result = self._probe(self.target, max(int(remaining_ms), 1))
            attempts += 1
            serving = self._is_serving(result)
            if serving == want_serving:
                outcome = self.expect
                break

            elapsed_ms = (self._clock() - start) * 1000
            if elapsed_ms >= self.timeout:
                outcome = DeploymentOutcome.DEPLOYED if serving else DeploymentOutcome.UNDEPLOYED
                logger.debug(
                    "Monitor timed out",
                    url=self.target.url,
                    elapsed_ms=int(elapsed_ms),
                    status_code=result.status_code,
                    status_message=result.message,
                )
                break
            self._sleep(min(self.poll_interval, self.timeout - elapsed_ms) / 1000.0)

        with self._lock:
            self._state = MonitorState.TERMINATED

        logger.debug(
            "URL is responding" if serving else "URL is not responding",
            url=self.target.url,
            outcome=outcome.value,
            attempts=attempts,
        )
        self._notify(listeners, outcome)
        return outcome

    def _notify(self, listeners: List[MonitorListener], outcome: DeploymentOutcome) -> None:
        errors = []
        for listener in listeners:
            logger.debug("Notifying monitor listener", listener=repr(listener), outcome=outcome.value)
            try:
                if outcome == DeploymentOutcome.DEPLOYED:
                    listener.on_deployed()
                else:
                    listener.on_undeployed()
            except Exception as exc:
                logger.exception("Monitor listener raised", listener=repr(listener))
                errors.append(exc)
        if errors:
            raise MonitorNotificationError(
                f"{len(errors)} of {len(listeners)} listeners failed", errors=errors
            )
