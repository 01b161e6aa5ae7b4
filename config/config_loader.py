"""
config_loader.py
-----------------
Singleton config loader. Reads config.yaml once and caches it.
Detection thresholds are read through this module, not hardcoded.
"""

import os
import yaml
from typing import Any, Dict


_CONFIG_CACHE: Dict[str, Any] = {}


def load_config(config_path: str | None = None) -> Dict[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to config/ relative to this file.

    Returns:
        Full config dictionary.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        _CONFIG_CACHE = yaml.safe_load(f)

    return _CONFIG_CACHE


def get_recurring_detection_config() -> Dict[str, Any]:
    """Returns the recurring_detection block."""
    return load_config()["recurring_detection"]


def get_merchant_insights_config() -> Dict[str, Any]:
    """Returns the merchant_insights block."""
    return load_config()["merchant_insights"]


def get_cadence_window(cadence: str) -> Dict[str, int]:
    """
    Returns the gap window for a single cadence label.

    Raises:
        KeyError: If the cadence has no configured window (e.g. "custom").
    """
    windows = get_recurring_detection_config()["cadence_windows"]
    if cadence not in windows:
        raise KeyError(
            f"No cadence window for '{cadence}'. "
            f"Available: {list(windows.keys())}"
        )
    return windows[cadence]


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
