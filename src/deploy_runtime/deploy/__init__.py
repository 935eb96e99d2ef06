"""Deployers: deploy, undeploy, redeploy, start and stop artifacts, optionally confirmed by a monitor."""

from .base import Deployer
from .local import LocalDeployer
from .remote import RemoteDeployer

__all__ = [
    "Deployer",
    "LocalDeployer",
    "RemoteDeployer",
]
