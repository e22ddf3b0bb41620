"""Build detectors from configuration records.

Detector modules register their tally types on import; importing this
module imports all of them so the registry is complete.
"""

import logging
from typing import List

from ..errors import ConfigurationError
from ..utils.config import DetectorConfig
from . import fiber, momentum_transfer, pmc, subregion, terminal, volume  # noqa: F401
from .base import DETECTOR_REGISTRY, Detector

logger = logging.getLogger(__name__)


def available_tally_types() -> List[str]:
    """Sorted list of every registered tally type."""
    return sorted(DETECTOR_REGISTRY)


def create_detector(config: DetectorConfig, tissue) -> Detector:
    """Build the detector described by config for tissue.

    Raises:
        ConfigurationError: If the tally type is unknown or the detector
            rejects its configuration. The message names the detector.
    """
    builder = DETECTOR_REGISTRY.get(config.tally_type)
    if builder is None:
        raise ConfigurationError(
            f"Unsupported tally type '{config.tally_type}' for detector '{config.name}'"
        )
    try:
        detector = builder(config, tissue)
    except ConfigurationError as exc:
        if config.name in str(exc):
            raise
        raise ConfigurationError(
            f"Invalid configuration for detector '{config.name}' ({config.tally_type}): {exc}"
        ) from exc
    logger.debug("Created detector '%s' (%s)", config.name, config.tally_type)
    return detector
