"""Exception hierarchy for pod route reconciliation."""

from __future__ import annotations


class PodRoutingError(Exception):
    """Base class for every error raised by :mod:`podroute`."""


class PlatformUnsupported(PodRoutingError):
    """The host platform has no compatible ``route`` command."""


class AddressUnavailable(PodRoutingError):
    """The VM has no host-reachable address yet (empty or loopback)."""


class InvalidAddress(PodRoutingError):
    """The VM-control collaborator reported something that is not an IP."""


class VMNotRunning(PodRoutingError):
    """Guest queries were requested while the VM is stopped."""


class CommandError(PodRoutingError):
    """An external command could not be executed at all."""


class CommandCancelled(CommandError):
    """An external command was killed by a stop request or its timeout."""


class RouteInstallFailed(PodRoutingError):
    """The privileged ``route add`` exited non-zero."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output

    def __str__(self) -> str:
        base = super().__str__()
        if self.output:
            return f"{base}, output: {self.output.strip()}"
        return base


class GuestCommandFailed(PodRoutingError):
    """A command executed inside the VM guest exited non-zero."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output
