"""Utilities module."""

from .config import DetectorConfig, DoubleRange, configs_from_dicts

__all__ = ["DetectorConfig", "DoubleRange", "configs_from_dicts"]
