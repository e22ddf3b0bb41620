"""Detectors (tallies) for Monte Carlo photon transport.

This module turns the photon records produced by a transport kernel into
binned, normalized estimates of reflectance, transmittance, absorption,
fluence and radiance, including perturbation (pMC) and differential (dMC)
reweighting of recorded trajectories.

Main Components:
    DetectorController: Routes photons to terminal and history detectors
    create_detector: Builds any registered tally type from a DetectorConfig
    Detector: Base class holding Mean, SecondMoment and TallyCount
    PerturbationSet: Reference/perturbed properties for pMC and dMC

Example:
    >>> from photon_tally import DetectorConfig, DoubleRange, MultiLayerTissue, OpticalProperties
    >>> from photon_tally.detectors import DetectorController
    >>>
    >>> tissue = MultiLayerTissue([OpticalProperties(mua=0.01, mus=1.0, g=0.8, n=1.4)], [100.0])
    >>> controller = DetectorController(
    ...     [DetectorConfig("ROfRho", axes={"rho": DoubleRange(0.0, 10.0, 101)})],
    ...     tissue,
    ... )
    >>> controller.process(photons)
    >>> controller.normalize_detectors(len(photons))
    >>> controller.detector("ROfRho").mean.shape
    (100,)
"""

from .absorption import AbsorptionWeightingType, absorbed_weight
from .accumulator import Accumulator, PhotonTally
from .base import (
    DETECTOR_REGISTRY,
    Detector,
    DetectorResult,
    HistoryDetector,
    Surface,
    TallyKind,
    TerminalDetector,
    register_detector,
)
from .binning import OUT_OF_RANGE, Axis, Jacobian, jacobian_tensor, which_bin
from .controller import DetectorController
from .factory import available_tally_types, create_detector
from .momentum_transfer import subregion_momentum_transfer
from .perturbation import (
    Derivative,
    PerturbationSet,
    collision_term,
    dmc_weight_factor,
    pmc_weight_factor,
)

__all__ = [
    # Controller and factory
    "DetectorController",
    "create_detector",
    "available_tally_types",
    "register_detector",
    "DETECTOR_REGISTRY",
    # Detectors
    "Detector",
    "DetectorResult",
    "TerminalDetector",
    "HistoryDetector",
    "TallyKind",
    "Surface",
    # Binning and storage
    "Axis",
    "Jacobian",
    "OUT_OF_RANGE",
    "which_bin",
    "jacobian_tensor",
    "Accumulator",
    "PhotonTally",
    # Weighting
    "AbsorptionWeightingType",
    "absorbed_weight",
    "Derivative",
    "PerturbationSet",
    "collision_term",
    "pmc_weight_factor",
    "dmc_weight_factor",
    "subregion_momentum_transfer",
]
