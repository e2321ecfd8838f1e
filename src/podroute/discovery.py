"""Discovery of the two facts a pod route is built from.

The VM address comes straight from the VM-control collaborator and is only
validated here.  The pod CIDR is scraped from guest diagnostics: depending on
the active network plugin it shows up either as a ``cluster-cidr=`` flag in a
``kubectl cluster-info dump`` or as the ``Network`` key of the flannel
configmap.  Neither source is authoritative, so each is modelled as an
independent :class:`CIDRStrategy` whose extractor is a pure function over
text, and only values that parse as a network are trusted.  When every
strategy comes up empty the k3s default is returned.
"""

from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass
from threading import Event
from typing import Callable, Optional, Sequence

from .exceptions import (
    AddressUnavailable,
    CommandError,
    GuestCommandFailed,
    InvalidAddress,
    PlatformUnsupported,
    VMNotRunning,
)
from .runner import supported_platform
from .vm.base import VMControl

LOG = logging.getLogger(__name__)

DEFAULT_POD_CIDR = "10.42.0.0/16"

_CLUSTER_CIDR_RE = re.compile(r"cluster-cidr=[\"']?([^\s\"',;]+)")
_VALUE_STRIP = " \t\"',"


def valid_cidr(value: str) -> bool:
    """Return ``True`` when ``value`` is IPv4 CIDR notation.

    Host bits are tolerated (``10.42.0.5/16`` is accepted) but the prefix
    length is mandatory.
    """

    if not value or "/" not in value:
        return False
    try:
        ipaddress.IPv4Network(value, strict=False)
    except ValueError:
        return False
    return True


def extract_cluster_cidr(text: str) -> Optional[str]:
    """Return the first valid ``cluster-cidr=`` value found in ``text``."""

    for line in text.splitlines():
        if "cluster-cidr=" not in line:
            continue
        for match in _CLUSTER_CIDR_RE.finditer(line):
            candidate = match.group(1)
            if valid_cidr(candidate):
                return candidate
    return None


def extract_flannel_network(text: str) -> Optional[str]:
    """Return the first valid ``Network`` value from a flannel configmap dump."""

    for line in text.splitlines():
        if "Network" not in line or ":" not in line:
            continue
        _, _, value = line.partition(":")
        candidate = value.strip(_VALUE_STRIP)
        if valid_cidr(candidate):
            return candidate
    return None


@dataclass(frozen=True)
class CIDRStrategy:
    """A guest command paired with the extractor that reads its output."""

    name: str
    command: Sequence[str]
    extract: Callable[[str], Optional[str]]


CIDR_STRATEGIES: Sequence[CIDRStrategy] = (
    CIDRStrategy(
        name="cluster-info",
        command=("kubectl", "cluster-info", "dump"),
        extract=extract_cluster_cidr,
    ),
    CIDRStrategy(
        name="flannel-configmap",
        command=(
            "kubectl",
            "get",
            "configmap",
            "kube-flannel-cfg",
            "-n",
            "kube-system",
            "-o",
            "yaml",
        ),
        extract=extract_flannel_network,
    ),
)


def discover_pod_cidr(
    vm: VMControl,
    *,
    stop_event: Optional[Event] = None,
    strategies: Sequence[CIDRStrategy] = CIDR_STRATEGIES,
) -> str:
    """Return the pod network CIDR, falling back to :data:`DEFAULT_POD_CIDR`.

    Raises :class:`VMNotRunning` when the VM is down; every other failure,
    including a timed out or cancelled guest command, degrades to the
    default.  Once ``stop_event`` is set the remaining strategies are skipped.
    """

    if not vm.running(stop_event=stop_event):
        raise VMNotRunning("VM not running")

    for strategy in strategies:
        try:
            output = vm.run_output(*strategy.command, stop_event=stop_event)
        except (GuestCommandFailed, CommandError) as exc:
            LOG.debug("pod CIDR strategy %s failed: %s", strategy.name, exc)
            if stop_event is not None and stop_event.is_set():
                break
            continue
        cidr = strategy.extract(output)
        if cidr:
            LOG.debug("pod CIDR %s discovered via %s", cidr, strategy.name)
            return cidr

    LOG.debug("Failed to get pod CIDR from cluster, using default %s", DEFAULT_POD_CIDR)
    return DEFAULT_POD_CIDR


def discover_vm_address(
    vm: VMControl,
    profile: str,
    *,
    platform: Optional[str] = None,
    stop_event: Optional[Event] = None,
) -> str:
    """Return the validated host-reachable IPv4 address of ``profile``'s VM."""

    if not supported_platform(platform):
        raise PlatformUnsupported("VM IP detection is only supported on macOS")

    address = (vm.ip_address(profile, stop_event=stop_event) or "").strip()
    if not address:
        raise AddressUnavailable("VM IP not available")

    try:
        parsed = ipaddress.IPv4Address(address)
    except ValueError:
        raise InvalidAddress(f"invalid VM IP address: {address}") from None

    if parsed.is_loopback:
        raise AddressUnavailable(f"VM IP not available or is localhost ({address})")
    return address
