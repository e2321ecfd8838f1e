"""Host route reconciliation for the pod network.

:class:`RouteManager` owns a single :class:`RouteIntent` (pod CIDR -> VM
address) and converges the host routing table towards it using the BSD
``route`` command.  The routing table is never cached: each operation
re-reads it with ``route -n get`` before mutating anything, so routes left
behind by a crashed run are detected and reconciled.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from threading import Event
from typing import Dict, List, Optional

from .exceptions import CommandError, RouteInstallFailed
from .runner import CommandRunner, supported_platform

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteIntent:
    """Desired routing state for one setup or cleanup call."""

    pod_cidr: str
    vm_address: str
    profile: str


@dataclass(frozen=True)
class RouteEntry:
    """The fields of ``route -n get`` output this module cares about."""

    destination: str
    mask: Optional[str] = None
    gateway: Optional[str] = None
    interface: Optional[str] = None

    @property
    def network(self) -> Optional[ipaddress.IPv4Network]:
        if self.destination == "default":
            return None
        try:
            if self.mask and self.mask != "default":
                return ipaddress.IPv4Network(f"{self.destination}/{self.mask}", strict=False)
            return ipaddress.IPv4Network(self.destination)
        except ValueError:
            return None

    def routes(self, cidr: str) -> bool:
        """Return ``True`` when this entry is the route for ``cidr``."""

        try:
            wanted = ipaddress.IPv4Network(cidr, strict=False)
        except ValueError:
            return False
        return self.network == wanted

    def via(self, address: str) -> bool:
        """Return ``True`` when the next hop is exactly ``address``."""

        if not self.gateway:
            return False
        try:
            return ipaddress.ip_address(self.gateway) == ipaddress.ip_address(address)
        except ValueError:
            return False


def parse_route_get(output: str) -> Optional[RouteEntry]:
    """Parse the ``key: value`` block printed by ``route -n get``."""

    fields: Dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        if key in ("destination", "mask", "gateway", "interface"):
            fields.setdefault(key, value.strip())

    if "destination" not in fields:
        return None
    return RouteEntry(
        destination=fields["destination"],
        mask=fields.get("mask"),
        gateway=fields.get("gateway"),
        interface=fields.get("interface"),
    )


def add_command(cidr: str, vm_address: str) -> List[str]:
    return ["sudo", "route", "add", cidr, vm_address]


def delete_command(cidr: str) -> List[str]:
    return ["sudo", "route", "delete", cidr]


def lookup_command(cidr: str) -> List[str]:
    return ["route", "-n", "get", cidr]


class RouteManager:
    """Install or remove the host route for the pod network.

    Construction is side-effect free and tolerates empty inputs, so a manager
    can be built even when discovery only partially succeeded; the
    operations then become no-ops.
    """

    def __init__(
        self,
        vm_address: str,
        pod_cidr: str,
        profile: str,
        *,
        runner: Optional[CommandRunner] = None,
        platform: Optional[str] = None,
    ) -> None:
        self._intent = RouteIntent(pod_cidr=pod_cidr, vm_address=vm_address, profile=profile)
        self._runner = runner or CommandRunner()
        self._platform = platform

    @property
    def intent(self) -> RouteIntent:
        return self._intent

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    def lookup(self, stop_event: Optional[Event] = None) -> Optional[RouteEntry]:
        """Return the host route for the pod CIDR, or ``None`` if absent."""

        try:
            result = self._runner.run(lookup_command(self._intent.pod_cidr), stop_event=stop_event)
        except CommandError as exc:
            LOG.debug("route lookup for %s failed: %s", self._intent.pod_cidr, exc)
            return None
        if not result.ok:
            return None

        entry = parse_route_get(result.output)
        if entry is None or not entry.routes(self._intent.pod_cidr):
            # route(8) answers with the default route when nothing specific
            # matches; that is not our route.
            return None
        return entry

    def route_exists(self, stop_event: Optional[Event] = None) -> bool:
        """Return ``True`` when the pod CIDR is routed as intended.

        With a VM address set the next hop must equal it; without one (the
        cleanup case) any route for the CIDR counts.
        """

        entry = self.lookup(stop_event)
        if entry is None:
            return False
        if not self._intent.vm_address:
            return True
        return entry.via(self._intent.vm_address)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def setup_pod_routing(self, stop_event: Optional[Event] = None) -> None:
        """Route the pod CIDR via the VM, raising :class:`RouteInstallFailed`."""

        intent = self._intent
        if not supported_platform(self._platform):
            LOG.debug("Pod routing setup is only supported on macOS")
            return
        if not intent.vm_address or not intent.pod_cidr:
            LOG.debug("VM IP or pod CIDR not available, skipping pod routing setup")
            return

        LOG.info("Setting up pod network routing: %s -> %s", intent.pod_cidr, intent.vm_address)

        entry = self.lookup(stop_event)
        if entry is not None:
            if entry.via(intent.vm_address):
                LOG.debug("Pod network route already exists")
                return
            LOG.info(
                "Replacing stale pod network route %s -> %s",
                intent.pod_cidr,
                entry.gateway,
            )
            self._delete(stop_event)

        try:
            result = self._runner.run(
                add_command(intent.pod_cidr, intent.vm_address), stop_event=stop_event
            )
        except CommandError as exc:
            raise RouteInstallFailed(f"failed to add pod network route: {exc}") from exc
        if not result.ok:
            raise RouteInstallFailed(
                f"failed to add pod network route (exit {result.returncode})",
                result.output,
            )

        LOG.info(
            "Pod network route configured successfully: %s -> %s",
            intent.pod_cidr,
            intent.vm_address,
        )

    def cleanup_pod_routing(self, stop_event: Optional[Event] = None) -> None:
        """Remove the pod route.  Failures are logged, never raised."""

        intent = self._intent
        if not supported_platform(self._platform):
            LOG.debug("Pod routing cleanup is only supported on macOS")
            return
        if not intent.pod_cidr:
            LOG.debug("Pod CIDR not available, skipping pod routing cleanup")
            return

        LOG.info("Cleaning up pod network routing: %s", intent.pod_cidr)

        if not self.route_exists(stop_event):
            LOG.debug("Pod network route does not exist, nothing to cleanup")
            return

        if self._delete(stop_event):
            LOG.info("Pod network route cleaned up successfully: %s", intent.pod_cidr)

    def _delete(self, stop_event: Optional[Event]) -> bool:
        try:
            result = self._runner.run(
                delete_command(self._intent.pod_cidr), stop_event=stop_event
            )
        except CommandError as exc:
            LOG.warning("Failed to remove pod network route: %s", exc)
            return False
        if not result.ok:
            LOG.warning(
                "Failed to remove pod network route (exit %s), output: %s",
                result.returncode,
                result.output.strip(),
            )
            return False
        return True
