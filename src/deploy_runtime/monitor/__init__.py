"""Deployment monitoring: single probes and the bounded poll loop."""

from .probe import probe
from .monitor import DeploymentMonitor, MonitorListener, OutcomeRecorder

__all__ = [
    "probe",
    "DeploymentMonitor",
    "MonitorListener",
    "OutcomeRecorder",
]
