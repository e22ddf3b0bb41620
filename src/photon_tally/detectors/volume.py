"""Volumetric absorption, fluence and radiance estimators.

These are history detectors: the controller hands them every consecutive
pair of trajectory points and they deposit the absorbed weight of that step,
as given by the shared absorption weighting policy, in the bin of the
current point.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Dict, Tuple

from ..errors import ConfigurationError
from ..photon_data import StatePoint
from ..utils.config import DetectorConfig, DoubleRange
from .absorption import absorbed_weight
from .base import HistoryDetector, register_detector
from .coordinates import locate_event, resolve_axes


class Quantity(Enum):
    """What a volumetric estimator reports."""
    ABSORBED = "absorbed"
    FLUENCE = "fluence"


@dataclass(frozen=True)
class VolumeSpec:
    """Declaration of one volumetric estimator."""
    quantity: Quantity
    axes: Tuple[str, ...] = ()
    defaults: Dict[str, DoubleRange] = field(default_factory=dict)


class VolumeEstimator(HistoryDetector):
    """Generic N-axis estimator of absorbed weight or fluence."""

    def __init__(self, config: DetectorConfig, tissue, spec: VolumeSpec):
        axes, self._definitions = resolve_axes(spec.axes, config, spec.defaults)
        if any(definition.of_photon for definition in self._definitions):
            raise ConfigurationError(
                f"Detector '{config.name}' uses a whole-photon axis, which history detectors cannot bin"
            )
        super().__init__(config, tissue, axes, complex_valued=any(a.sampled for a in axes))
        self.spec = spec
        # Resolved once so a bad weighting type fails here, not mid-run
        self._weighting = self.absorption_weighting_type

    def _tally(self, previous: StatePoint, current: StatePoint, region_index: int) -> None:
        ops = self.tissue.regions[region_index]
        weight = absorbed_weight(self._weighting, ops.mua, ops.mus, previous, current)
        if weight == 0.0:
            return
        location = locate_event(self.axes, self._definitions, self.accumulator.strides, current)
        if location is None:
            return
        flat_index, phases = location
        if self.spec.quantity is Quantity.FLUENCE:
            weight /= ops.mua
        self._add(flat_index, weight if phases is None else weight * phases)
        self.accumulator.count()


A = Quantity.ABSORBED
F = Quantity.FLUENCE

VOLUME_ESTIMATORS: Dict[str, VolumeSpec] = {
    "ATotal": VolumeSpec(A),
    "AOfRhoAndZ": VolumeSpec(A, ("rho", "z")),
    "AOfXAndYAndZ": VolumeSpec(A, ("x", "y", "z")),
    "FluenceOfRhoAndZ": VolumeSpec(F, ("rho", "z")),
    "FluenceOfRhoAndZAndTime": VolumeSpec(F, ("rho", "z", "time")),
    "FluenceOfRhoAndZAndOmega": VolumeSpec(F, ("rho", "z", "omega")),
    "FluenceOfXAndYAndZ": VolumeSpec(F, ("x", "y", "z")),
    "FluenceOfXAndYAndZAndTime": VolumeSpec(F, ("x", "y", "z", "time")),
    "FluenceOfXAndYAndZAndOmega": VolumeSpec(F, ("x", "y", "z", "omega")),
    "FluenceOfFxAndZ": VolumeSpec(F, ("fx", "z")),
    "RadianceOfRhoAndZAndAngle": VolumeSpec(F, ("rho", "z", "angle")),
    "RadianceOfFxAndZAndAngle": VolumeSpec(
        F, ("fx", "z", "angle"),
        defaults={"angle": DoubleRange(0.0, math.pi, 5)},
    ),
    "RadianceOfXAndYAndZAndThetaAndPhi": VolumeSpec(
        F, ("x", "y", "z", "theta", "phi"),
        defaults={"theta": DoubleRange(0.0, math.pi, 5)},
    ),
}

for _tally_type, _spec in VOLUME_ESTIMATORS.items():
    register_detector(_tally_type, partial(VolumeEstimator, spec=_spec))
