"""Detector and tally layer for Monte Carlo light transport in layered tissue."""

from .detectors import AbsorptionWeightingType, DetectorController, create_detector
from .errors import ConfigurationError, DetectorStateError, TallyError, UnsupportedWeightingError
from .optical_properties import OpticalProperties
from .photon_data import CollisionInfo, Photon, PhotonHistory, PhotonStateType, StatePoint
from .tissue import MultiLayerTissue, Tissue
from .utils.config import DetectorConfig, DoubleRange

__version__ = "0.1.0"
__all__ = [
    "AbsorptionWeightingType",
    "CollisionInfo",
    "ConfigurationError",
    "DetectorConfig",
    "DetectorController",
    "DetectorStateError",
    "DoubleRange",
    "MultiLayerTissue",
    "OpticalProperties",
    "Photon",
    "PhotonHistory",
    "PhotonStateType",
    "StatePoint",
    "TallyError",
    "Tissue",
    "UnsupportedWeightingError",
    "create_detector",
]
