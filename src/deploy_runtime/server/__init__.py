"""In-process hosting: context registry, artifact handles and request routing."""

from .registry import ContextEntry, ContextRegistry
from .handles import ArtifactHandle
from .routing import ContextRouter

__all__ = [
    "ContextEntry",
    "ContextRegistry",
    "ArtifactHandle",
    "ContextRouter",
]
