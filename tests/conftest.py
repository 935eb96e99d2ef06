"""
Pytest configuration and fixtures for deploy runtime tests.
"""

import io
import zipfile
from pathlib import Path

import pytest

from deploy_runtime.core.config import Settings
from deploy_runtime.core.models import ProbeResult
from deploy_runtime.deploy.local import LocalDeployer
from deploy_runtime.server.registry import ContextRegistry


def make_war(files: dict[str, bytes] | None = None) -> bytes:
    """Build an archive in memory; defaults to a single index page."""
    if files is None:
        files = {"index.html": b"<h1>hello</h1>"}
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


class FakeClock:
    """Monotonic clock advanced only by its own sleep()."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    @property
    def elapsed_ms(self) -> float:
        return self.now * 1000


class ScriptedProbe:
    """Probe returning queued results, repeating the last one forever."""

    def __init__(self, *results: ProbeResult):
        self.results = list(results)
        self.calls = []

    def __call__(self, target, timeout_ms):
        self.calls.append((target, timeout_ms))
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


UP = ProbeResult(success=True, status_code=200, message="OK", body="Welcome")
DOWN = ProbeResult(success=False, status_code=0, message="ConnectError: Connection refused")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        deploy_dir=str(tmp_path / "webapps"),
        work_dir=str(tmp_path / "work"),
        scan_on_startup=False,
        metrics_enabled=False,
        log_level="DEBUG",
        log_format="console",
    )


@pytest.fixture
def registry() -> ContextRegistry:
    return ContextRegistry()


@pytest.fixture
def deployer(registry: ContextRegistry, settings: Settings) -> LocalDeployer:
    return LocalDeployer(registry, settings)
