"""Configuration data structures for pod route reconciliation.

These dataclasses carry the three inputs the orchestrator needs: whether the
Kubernetes feature is enabled, whether the VM gets a host-reachable address,
and which profile the VM belongs to.  Loading them from disk is left to
:mod:`podroute_agent.config` so the core stays free of file formats.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PROFILE = "default"
INSTANCE_PREFIX = "colima"


@dataclass(frozen=True)
class Profile:
    """A named VM environment.

    Attributes
    ----------
    name:
        Short profile name as typed by the user (``default``, ``work``...).
    """

    name: str = DEFAULT_PROFILE

    @property
    def short_name(self) -> str:
        name = self.name or DEFAULT_PROFILE
        if name == INSTANCE_PREFIX:
            return DEFAULT_PROFILE
        if name.startswith(INSTANCE_PREFIX + "-"):
            return name[len(INSTANCE_PREFIX) + 1 :]
        return name

    @property
    def id(self) -> str:
        """Instance identifier used by the VM backend."""

        short = self.short_name
        if short == DEFAULT_PROFILE:
            return INSTANCE_PREFIX
        return f"{INSTANCE_PREFIX}-{short}"


@dataclass(frozen=True)
class ProfileConfig:
    """Feature switches consulted before touching host routes."""

    profile: Profile
    kubernetes_enabled: bool = False
    network_address: bool = False
