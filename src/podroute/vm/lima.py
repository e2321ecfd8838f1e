"""Lima-backed implementation of :class:`~podroute.vm.base.VMControl`."""

from __future__ import annotations

import ipaddress
import json
import logging
from threading import Event
from typing import Optional

from ..config import Profile
from ..exceptions import CommandError, GuestCommandFailed
from ..runner import CommandRunner
from .base import VMControl

LOG = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"
HOST_INTERFACE = "col0"


def _parse_status(output: str, instance: str) -> Optional[str]:
    # limactl prints one JSON object per line, one line per instance.
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict) and entry.get("name") == instance:
            return entry.get("status")
    return None


def _parse_inet(output: str) -> Optional[str]:
    """Return the first IPv4 address from ``ip -4 addr show`` output."""

    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == "inet":
            address = fields[1].split("/", 1)[0]
            try:
                ipaddress.IPv4Address(address)
            except ValueError:
                continue
            return address
    return None


class LimaVM(VMControl):
    """Drive a Lima instance through ``limactl``.

    Parameters
    ----------
    profile:
        Profile the instance belongs to; resolved to the instance name via
        :attr:`podroute.config.Profile.id`.
    runner:
        Command runner used for every ``limactl`` call.
    limactl:
        Name or path of the ``limactl`` binary.
    """

    def __init__(
        self,
        profile: Profile,
        runner: Optional[CommandRunner] = None,
        limactl: str = "limactl",
    ) -> None:
        self._profile = profile
        self._runner = runner or CommandRunner()
        self._limactl = limactl

    @property
    def instance(self) -> str:
        return self._profile.id

    def running(self, stop_event: Optional[Event] = None) -> bool:
        try:
            result = self._runner.run(
                [self._limactl, "list", self.instance, "--json"],
                stop_event=stop_event,
            )
        except CommandError as exc:
            LOG.debug("unable to query status of %s: %s", self.instance, exc)
            return False
        if not result.ok:
            return False
        return _parse_status(result.output, self.instance) == "Running"

    def run_output(self, *args: str, stop_event: Optional[Event] = None) -> str:
        result = self._runner.run(
            [self._limactl, "shell", self.instance, *args],
            stop_event=stop_event,
        )
        if not result.ok:
            raise GuestCommandFailed(
                f"guest command '{' '.join(args)}' exited with {result.returncode}",
                result.output,
            )
        return result.output

    def ip_address(self, profile: str, stop_event: Optional[Event] = None) -> str:
        instance = Profile(profile).id
        try:
            result = self._runner.run(
                [self._limactl, "shell", instance, "ip", "-4", "addr", "show", HOST_INTERFACE],
                stop_event=stop_event,
            )
        except CommandError as exc:
            LOG.debug("unable to read %s address of %s: %s", HOST_INTERFACE, instance, exc)
            return LOOPBACK
        if not result.ok:
            return LOOPBACK
        return _parse_inet(result.output) or LOOPBACK
