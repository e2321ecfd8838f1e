"""podroute command line runtime helpers."""

from .config import config_path_for, load_config  # noqa: F401

__all__ = [
    "config_path_for",
    "load_config",
]
