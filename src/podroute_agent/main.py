"""Entry point for the podroute command."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event
from typing import Optional

import yaml

from podroute.config import Profile, ProfileConfig
from podroute.discovery import discover_pod_cidr, discover_vm_address
from podroute.exceptions import PodRoutingError
from podroute.orchestrator import (
    cleanup_pod_routing_for_profile,
    setup_pod_routing_for_profile,
)
from podroute.routes import RouteManager
from podroute.runner import CommandRunner
from podroute.vm import LimaVM, VMControl

from .config import config_path_for, load_config

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podroute",
        description="Manage the host route to a VM's Kubernetes pod network",
    )
    parser.add_argument(
        "action",
        choices=("setup", "cleanup", "status"),
        help="Install the route, remove it, or report discovery results",
    )
    parser.add_argument(
        "--profile",
        default="default",
        help="Profile whose VM should be used (default: %(default)s)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the profile YAML file (default: $COLIMA_HOME/<profile>/colima.yaml)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Upper bound in seconds for each external command",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero when the route cannot be installed",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _status(
    config: ProfileConfig,
    vm: VMControl,
    runner: CommandRunner,
    stop_event: Event,
    platform: Optional[str] = None,
) -> int:
    profile = config.profile.id
    print(f"profile:          {profile}")
    print(f"kubernetes:       {'enabled' if config.kubernetes_enabled else 'disabled'}")
    print(f"network.address:  {'enabled' if config.network_address else 'disabled'}")

    try:
        vm_address = discover_vm_address(
            vm, profile, platform=platform, stop_event=stop_event
        )
    except PodRoutingError as exc:
        vm_address = ""
        print(f"vm address:       unavailable ({exc})")
    else:
        print(f"vm address:       {vm_address}")

    try:
        pod_cidr = discover_pod_cidr(vm, stop_event=stop_event)
    except PodRoutingError as exc:
        print(f"pod cidr:         unavailable ({exc})")
        return 1
    print(f"pod cidr:         {pod_cidr}")

    manager = RouteManager(vm_address, pod_cidr, profile, runner=runner, platform=platform)
    entry = manager.lookup(stop_event)
    if entry is None:
        print("route:            not installed")
    elif vm_address and not entry.via(vm_address):
        print(f"route:            stale (via {entry.gateway})")
    else:
        print(f"route:            installed (via {entry.gateway})")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    profile = Profile(args.profile)
    config_path = args.config or config_path_for(profile)
    try:
        config = load_config(config_path, profile)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        LOG.error("failed to load profile configuration %s: %s", config_path, exc)
        return 2

    runner = CommandRunner(timeout=args.timeout)
    vm = LimaVM(profile, runner=runner)
    stop_event = Event()

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, cancelling", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    if args.action == "status":
        return _status(config, vm, runner, stop_event)

    if args.action == "cleanup":
        cleanup_pod_routing_for_profile(config, vm, stop_event=stop_event, runner=runner)
        return 0

    try:
        setup_pod_routing_for_profile(config, vm, stop_event=stop_event, runner=runner)
    except PodRoutingError as exc:
        LOG.warning("%s", exc)
        LOG.warning(
            "Add the route manually with: sudo route add <pod-cidr> <vm-ip>"
        )
        return 1 if args.strict else 0
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
