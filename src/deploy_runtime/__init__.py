"""Deploy Runtime - hosting server with monitored, remotely driven artifact deployment."""

__version__ = "0.1.0"
__author__ = "Deploy Runtime Team"

from deploy_runtime.core.config import Settings
from deploy_runtime.core.models import Artifact, ArtifactKind

__all__ = ["Settings", "Artifact", "ArtifactKind", "__version__"]
