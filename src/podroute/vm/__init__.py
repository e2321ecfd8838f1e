"""VM-control collaborators consumed by the route orchestrator."""

from .base import VMControl  # noqa: F401
from .lima import LimaVM  # noqa: F401

__all__ = ["LimaVM", "VMControl"]
