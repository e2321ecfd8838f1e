"""Abstract interface for the VM-control collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Event
from typing import Optional


class VMControl(ABC):
    """Queries the orchestrator needs from whatever runs the VM."""

    @abstractmethod
    def running(self, stop_event: Optional[Event] = None) -> bool:
        """Return ``True`` when the VM is currently up."""

    @abstractmethod
    def run_output(self, *args: str, stop_event: Optional[Event] = None) -> str:
        """Run a read-only command in the guest and return combined output.

        Raises :class:`~podroute.exceptions.GuestCommandFailed` when the
        command exits non-zero.
        """

    @abstractmethod
    def ip_address(self, profile: str, stop_event: Optional[Event] = None) -> str:
        """Return the VM's host-reachable address, or empty/loopback."""
