import ipaddress

import pytest

from podroute.config import Profile, ProfileConfig
from podroute.exceptions import CommandCancelled, GuestCommandFailed, RouteInstallFailed
from podroute.orchestrator import (
    cleanup_pod_routing_for_profile,
    setup_pod_routing_for_profile,
)
from podroute.runner import CommandResult
from podroute.vm.base import VMControl

CLUSTER_INFO = ("kubectl", "cluster-info", "dump")


class FakeVM(VMControl):
    def __init__(self, outputs=None, running=True, address="192.168.105.2"):
        self.outputs = dict(outputs or {})
        self.is_running = running
        self.address = address
        self.calls = []

    def running(self, stop_event=None):
        self.calls.append(("running",))
        return self.is_running

    def run_output(self, *args, stop_event=None):
        self.calls.append(args)
        if args not in self.outputs:
            raise GuestCommandFailed("command failed", "connection refused")
        result = self.outputs[args]
        if isinstance(result, Exception):
            raise result
        return result

    def ip_address(self, profile, stop_event=None):
        self.calls.append(("ip_address", profile))
        return self.address


class RecordingRunner:
    def __init__(self, routes=None, add_rc=0, delete_rc=0):
        self.routes = dict(routes or {})
        self.add_rc = add_rc
        self.delete_rc = delete_rc
        self.commands = []

    def run(self, args, *, stop_event=None, timeout=None):
        args = list(args)
        self.commands.append(args)
        if args[:3] == ["route", "-n", "get"]:
            gateway = self.routes.get(args[3])
            if gateway is None:
                return CommandResult(args, 1, "route: writing to routing socket: not in table\n")
            network = ipaddress.IPv4Network(args[3])
            return CommandResult(
                args,
                0,
                f"destination: {network.network_address}\n"
                f"       mask: {network.netmask}\n"
                f"    gateway: {gateway}\n",
            )
        if args[:3] == ["sudo", "route", "add"]:
            if not self.add_rc:
                self.routes[args[3]] = args[4]
            return CommandResult(args, self.add_rc, "route: Permission denied\n" if self.add_rc else "")
        if args[:3] == ["sudo", "route", "delete"]:
            if not self.delete_rc:
                self.routes.pop(args[3], None)
            return CommandResult(args, self.delete_rc, "")
        raise AssertionError(f"unexpected command {args}")

    @property
    def mutations(self):
        return [cmd for cmd in self.commands if cmd[0] == "sudo"]


def build_config(kubernetes=True, address=True):
    return ProfileConfig(
        profile=Profile("default"),
        kubernetes_enabled=kubernetes,
        network_address=address,
    )


def test_setup_installs_route():
    vm = FakeVM({CLUSTER_INFO: "--cluster-cidr=10.42.0.0/16"})
    runner = RecordingRunner()

    setup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")

    assert runner.mutations == [["sudo", "route", "add", "10.42.0.0/16", "192.168.105.2"]]
    assert ("ip_address", "colima") in vm.calls


def test_setup_twice_adds_once():
    vm = FakeVM({CLUSTER_INFO: "--cluster-cidr=10.42.0.0/16"})
    runner = RecordingRunner()

    setup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")
    setup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")

    assert len(runner.mutations) == 1


def test_setup_disabled_feature_runs_nothing():
    vm = FakeVM()
    runner = RecordingRunner()

    setup_pod_routing_for_profile(
        build_config(kubernetes=False), vm, runner=runner, platform="darwin"
    )

    assert runner.commands == []
    assert vm.calls == []


def test_setup_without_host_address_runs_nothing():
    vm = FakeVM()
    runner = RecordingRunner()

    setup_pod_routing_for_profile(build_config(address=False), vm, runner=runner, platform="darwin")

    assert runner.commands == []
    assert vm.calls == []


def test_setup_swallows_loopback_address(caplog):
    vm = FakeVM({CLUSTER_INFO: "--cluster-cidr=10.42.0.0/16"}, address="127.0.0.1")
    runner = RecordingRunner()

    setup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")

    assert runner.commands == []
    assert "Failed to get VM IP" in caplog.text


def test_setup_swallows_stopped_vm(caplog):
    vm = FakeVM(running=False)
    runner = RecordingRunner()

    setup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")

    assert runner.commands == []
    assert "VM not running" in caplog.text


def test_setup_swallows_unsupported_platform():
    vm = FakeVM()
    runner = RecordingRunner()

    setup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="linux")

    assert runner.commands == []


def test_setup_propagates_install_failure():
    vm = FakeVM({CLUSTER_INFO: "--cluster-cidr=10.42.0.0/16"})
    runner = RecordingRunner(add_rc=1)

    with pytest.raises(RouteInstallFailed) as excinfo:
        setup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")

    assert "Permission denied" in str(excinfo.value)


def test_cleanup_with_stopped_vm_uses_default_cidr():
    vm = FakeVM(running=False)
    runner = RecordingRunner(routes={"10.42.0.0/16": "192.168.105.2"}, delete_rc=1)

    cleanup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")

    assert runner.mutations == [["sudo", "route", "delete", "10.42.0.0/16"]]


def test_cleanup_uses_discovered_cidr():
    vm = FakeVM({CLUSTER_INFO: "--cluster-cidr=10.52.0.0/16"})
    runner = RecordingRunner(routes={"10.52.0.0/16": "192.168.105.2"})

    cleanup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")

    assert runner.mutations == [["sudo", "route", "delete", "10.52.0.0/16"]]
    assert runner.routes == {}


def test_cleanup_ignores_host_address_flag():
    vm = FakeVM(running=False)
    runner = RecordingRunner(routes={"10.42.0.0/16": "192.168.105.2"})

    cleanup_pod_routing_for_profile(build_config(address=False), vm, runner=runner, platform="darwin")

    assert runner.mutations == [["sudo", "route", "delete", "10.42.0.0/16"]]


def test_cleanup_disabled_feature_runs_nothing():
    vm = FakeVM()
    runner = RecordingRunner(routes={"10.42.0.0/16": "192.168.105.2"})

    cleanup_pod_routing_for_profile(
        build_config(kubernetes=False), vm, runner=runner, platform="darwin"
    )

    assert runner.commands == []
    assert vm.calls == []


def test_setup_survives_slow_cluster_info_dump():
    flannel = (
        "kubectl",
        "get",
        "configmap",
        "kube-flannel-cfg",
        "-n",
        "kube-system",
        "-o",
        "yaml",
    )
    vm = FakeVM(
        {
            CLUSTER_INFO: CommandCancelled("kubectl cluster-info dump: timed out after 30.0s"),
            flannel: '      "Network": "10.244.0.0/16",\n',
        }
    )
    runner = RecordingRunner()

    setup_pod_routing_for_profile(build_config(), vm, runner=runner, platform="darwin")

    assert runner.mutations == [["sudo", "route", "add", "10.244.0.0/16", "192.168.105.2"]]
