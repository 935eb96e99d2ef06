"""Core data models for Deploy Runtime."""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from deploy_runtime.utils.paths import context_from_location


class ArtifactKind(str, Enum):
    """How the artifact is laid out on disk."""

    ARCHIVE = "archive"
    EXPLODED = "exploded"


class MonitorState(str, Enum):
    NOT_STARTED = "not_started"
    POLLING = "polling"
    TERMINATED = "terminated"


class DeploymentOutcome(str, Enum):
    """Terminal event delivered by a deployment monitor."""

    DEPLOYED = "deployed"
    UNDEPLOYED = "undeployed"


class Artifact(BaseModel):
    """A deployable application bundle handed to a deployer for one operation."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Mount path the artifact is served under")
    content: Optional[bytes] = Field(None, description="Raw artifact bytes")
    location: Optional[Path] = Field(None, description="Archive file or exploded directory on disk")
    kind: ArtifactKind = Field(ArtifactKind.ARCHIVE)

    @model_validator(mode="before")
    @classmethod
    def derive_defaults(cls, data: Any) -> Any:
        """Derive the mount path from the file name and the kind from the location."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        location = data.get("location")
        if location is not None:
            if not data.get("path"):
                data["path"] = context_from_location(str(location))
            if "kind" not in data and Path(location).is_dir():
                data["kind"] = ArtifactKind.EXPLODED
        return data

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v or not v.startswith("/"):
            raise ValueError(f"Mount path must start with /: {v!r}")
        return v

    @model_validator(mode="after")
    def check_source(self) -> "Artifact":
        if (self.content is None) == (self.location is None):
            raise ValueError("Exactly one of content or location is required")
        if self.content is not None and self.kind == ArtifactKind.EXPLODED:
            raise ValueError("Raw content can only describe an archive")
        return self


class ProbeTarget(BaseModel):
    """Address to probe plus an optional substring the response body must contain."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1)
    contains: Optional[str] = Field(None)


class ProbeResult(BaseModel):
    """Outcome of one probe round trip."""

    model_config = ConfigDict(frozen=True)

    success: bool
    status_code: int = 0
    message: str = ""
    body: Optional[str] = None


class UndeployReport(BaseModel):
    """What an undeploy did to the deployment directory."""

    path: str
    location: Optional[str] = None
    removed: bool = False
    warning: Optional[str] = None

    @property
    def message(self) -> str:
        if self.removed:
            return f"Webapp with {self.path} context has been undeployed and removed from the filesystem"
        if self.warning:
            return f"Webapp with {self.path} context has been undeployed but not removed from the filesystem"
        return f"Webapp with {self.path} context has been undeployed"
