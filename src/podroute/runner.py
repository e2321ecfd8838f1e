"""Host command execution with cancellation support.

All external commands (the privileged ``route`` mutations, the read-only
route lookup and the ``limactl`` guest queries) go through
:class:`CommandRunner`.  The runner merges stdout and stderr so callers can
surface the full diagnostic text, and it polls the child process in short
slices so a ``stop_event`` set during VM shutdown kills a hung command
instead of blocking forever.
"""

from __future__ import annotations

import logging
import subprocess
import sys
import time
from dataclasses import dataclass
from threading import Event
from typing import Optional, Sequence

from .exceptions import CommandCancelled, CommandError

LOG = logging.getLogger(__name__)

TARGET_PLATFORM = "darwin"


def supported_platform(platform: Optional[str] = None) -> bool:
    """Return ``True`` when ``platform`` (default: this host) is macOS."""

    return (platform or sys.platform) == TARGET_PLATFORM


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished external command."""

    args: Sequence[str]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Run external commands, honouring a stop event and a timeout.

    Parameters
    ----------
    timeout:
        Default upper bound in seconds for a single command.  ``None``
        disables the bound; the stop event is still honoured.
    poll_interval:
        How often the stop event is checked while the child runs.
    """

    def __init__(self, timeout: Optional[float] = 30.0, poll_interval: float = 0.1) -> None:
        self._timeout = timeout
        self._poll_interval = poll_interval

    def run(
        self,
        args: Sequence[str],
        *,
        stop_event: Optional[Event] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        args = [str(a) for a in args]
        if stop_event is not None and stop_event.is_set():
            raise CommandCancelled(f"not running {' '.join(args)}: stop requested")

        limit = timeout if timeout is not None else self._timeout
        deadline = time.monotonic() + limit if limit is not None else None

        LOG.debug("Executing: %s", " ".join(args))
        try:
            proc = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise CommandError(f"failed to execute {args[0]}: {exc}") from exc

        try:
            output = self._wait(proc, stop_event, deadline, limit)
        except CommandCancelled as exc:
            raise CommandCancelled(f"{' '.join(args)}: {exc}") from None
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.communicate()

        LOG.debug("Command %s exited with %s", args[0], proc.returncode)
        return CommandResult(args=args, returncode=proc.returncode, output=output or "")

    def _wait(
        self,
        proc: subprocess.Popen,
        stop_event: Optional[Event],
        deadline: Optional[float],
        limit: Optional[float],
    ) -> str:
        while True:
            try:
                output, _ = proc.communicate(timeout=self._poll_interval)
                return output or ""
            except subprocess.TimeoutExpired:
                if stop_event is not None and stop_event.is_set():
                    raise CommandCancelled("stop requested") from None
                if deadline is not None and time.monotonic() >= deadline:
                    raise CommandCancelled(f"timed out after {limit}s") from None
