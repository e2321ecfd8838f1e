"""Host routes to the pod network of a VM-hosted Kubernetes cluster.

When a VM runs k3s with a host-reachable address, pods get addresses from an
overlay network (``10.42.0.0/16`` by default) that the host cannot reach.
This package installs a host route for that network via the VM address when
the VM starts and removes it when the VM stops:

* :mod:`podroute.discovery` finds the VM address and the pod CIDR;
* :mod:`podroute.routes` reconciles the host routing table; and
* :mod:`podroute.orchestrator` ties both together as best-effort lifecycle
  hooks.

Only macOS is supported, where the BSD ``route`` command is available.
"""

from .config import Profile, ProfileConfig  # noqa: F401
from .orchestrator import (  # noqa: F401
    cleanup_pod_routing_for_profile,
    setup_pod_routing_for_profile,
)
from .routes import RouteManager  # noqa: F401

__all__ = [
    "Profile",
    "ProfileConfig",
    "RouteManager",
    "cleanup_pod_routing_for_profile",
    "setup_pod_routing_for_profile",
]
