"""YAML profile configuration loader for the podroute CLI."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml

from podroute.config import Profile, ProfileConfig

CONFIG_FILENAME = "colima.yaml"


def config_home() -> Path:
    home = os.environ.get("COLIMA_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".colima"


def config_path_for(profile: Profile, home: Optional[Path] = None) -> Path:
    return (home or config_home()) / profile.short_name / CONFIG_FILENAME


def _section(data: dict, name: str) -> dict:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' section must be a mapping")
    return section


def load_config(path: Path, profile: Profile) -> ProfileConfig:
    if not path.exists():
        return ProfileConfig(profile=profile)

    data = yaml.safe_load(path.read_text())
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Profile configuration must be a mapping")

    kubernetes = _section(data, "kubernetes")
    network = _section(data, "network")

    return ProfileConfig(
        profile=profile,
        kubernetes_enabled=bool(kubernetes.get("enabled", False)),
        network_address=bool(network.get("address", False)),
    )
