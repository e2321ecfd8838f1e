"""Entry points called by the VM lifecycle around start and stop.

Pod routing is a convenience: it must never keep a VM from starting or
stopping.  The policy for which failures are swallowed is kept in
:func:`_best_effort` so it can be audited in one place.  The only error
allowed to escape is :class:`~podroute.exceptions.RouteInstallFailed` from
setup, and callers are expected to treat it as a warning.
"""

from __future__ import annotations

import logging
from threading import Event
from typing import Callable, Optional, TypeVar

from .config import ProfileConfig
from .discovery import DEFAULT_POD_CIDR, discover_pod_cidr, discover_vm_address
from .exceptions import PodRoutingError
from .routes import RouteManager
from .runner import CommandRunner
from .vm.base import VMControl

LOG = logging.getLogger(__name__)

T = TypeVar("T")


def _best_effort(what: str, func: Callable[[], T], fallback: Optional[T] = None) -> Optional[T]:
    try:
        return func()
    except PodRoutingError as exc:
        if fallback is None:
            LOG.warning("Failed to get %s for pod routing: %s", what, exc)
        else:
            LOG.warning(
                "Failed to get %s for pod routing: %s; using %s", what, exc, fallback
            )
        return fallback


def setup_pod_routing_for_profile(
    config: ProfileConfig,
    vm: VMControl,
    *,
    stop_event: Optional[Event] = None,
    runner: Optional[CommandRunner] = None,
    platform: Optional[str] = None,
) -> None:
    """Route the pod network of ``config.profile`` through its VM.

    Call after the VM has finished starting.
    """

    if not config.kubernetes_enabled:
        LOG.debug("Kubernetes not enabled, skipping pod routing setup")
        return
    if not config.network_address:
        LOG.debug("network.address not enabled, skipping pod routing setup")
        return

    profile = config.profile.id

    vm_address = _best_effort(
        "VM IP",
        lambda: discover_vm_address(
            vm, profile, platform=platform, stop_event=stop_event
        ),
    )
    if vm_address is None:
        return

    pod_cidr = _best_effort("pod CIDR", lambda: discover_pod_cidr(vm, stop_event=stop_event))
    if pod_cidr is None:
        return

    manager = RouteManager(vm_address, pod_cidr, profile, runner=runner, platform=platform)
    manager.setup_pod_routing(stop_event)


def cleanup_pod_routing_for_profile(
    config: ProfileConfig,
    vm: VMControl,
    *,
    stop_event: Optional[Event] = None,
    runner: Optional[CommandRunner] = None,
    platform: Optional[str] = None,
) -> None:
    """Remove the pod route of ``config.profile``.

    Call before the VM finishes stopping.  The VM may already be down, in
    which case the default pod CIDR is assumed.
    """

    if not config.kubernetes_enabled:
        LOG.debug("Kubernetes not enabled, skipping pod routing cleanup")
        return

    profile = config.profile.id

    pod_cidr = _best_effort(
        "pod CIDR",
        lambda: discover_pod_cidr(vm, stop_event=stop_event),
        fallback=DEFAULT_POD_CIDR,
    )

    # The route is keyed by CIDR alone, cleanup needs no VM address.
    manager = RouteManager("", pod_cidr, profile, runner=runner, platform=platform)
    manager.cleanup_pod_routing(stop_event)
