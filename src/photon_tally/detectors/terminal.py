"""Surface estimators tallied once per photon from its exit point.

Every reflectance and transmittance estimator is the same N-axis estimator
with a different surface and axis list; :data:`TERMINAL_ESTIMATORS` declares
them and registers one builder per tally type.
"""

import math
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, Tuple

from ..photon_data import Photon
from ..utils.config import DetectorConfig, DoubleRange
from .base import Surface, TerminalDetector, register_detector
from .coordinates import locate_event, resolve_axes

REFLECTED_ANGLES = DoubleRange(math.pi / 2, math.pi, 5)
TRANSMITTED_ANGLES = DoubleRange(0.0, math.pi / 2, 5)


@dataclass(frozen=True)
class TerminalSpec:
    """Declaration of one surface estimator.

    Attributes:
        surface: Which exit points the estimator accepts
        axes: Axis names, outermost first
        gated: Apply the numerical-aperture admission test
        defaults: Estimator-specific default ranges by axis name
    """
    surface: Surface
    axes: Tuple[str, ...] = ()
    gated: bool = True
    defaults: Dict[str, DoubleRange] = field(default_factory=dict)


class TerminalEstimator(TerminalDetector):
    """Generic N-axis estimator of the terminal weight.

    Args:
        config: Detector configuration
        tissue: Tissue the run simulates
        spec: Surface, axes and gating of this tally type
    """

    def __init__(self, config: DetectorConfig, tissue, spec: TerminalSpec):
        axes, self._definitions = resolve_axes(spec.axes, config, spec.defaults)
        super().__init__(config, tissue, axes, complex_valued=any(a.sampled for a in axes))
        self.spec = spec
        self.surface = spec.surface
        if spec.gated:
            self._check_aperture_config()

    def weight_factor(self, photon: Photon) -> float:
        """Multiplier applied to the terminal weight before binning."""
        return 1.0

    def _tally(self, photon: Photon) -> None:
        if self.spec.gated and not self.is_within_aperture(photon):
            return
        location = locate_event(
            self.axes, self._definitions, self.accumulator.strides, photon.dp, photon
        )
        if location is None:
            return
        flat_index, phases = location
        weight = photon.dp.weight * self.weight_factor(photon)
        self.accumulator.add(flat_index, weight if phases is None else weight * phases)
        self.accumulator.count()


R = Surface.REFLECTED
T = Surface.TRANSMITTED

TERMINAL_ESTIMATORS: Dict[str, TerminalSpec] = {
    "RDiffuse": TerminalSpec(R),
    "TDiffuse": TerminalSpec(T),
    "ROfRho": TerminalSpec(R, ("rho",)),
    "TOfRho": TerminalSpec(T, ("rho",)),
    "ROfAngle": TerminalSpec(R, ("angle",), defaults={"angle": REFLECTED_ANGLES}),
    "TOfAngle": TerminalSpec(T, ("angle",), defaults={"angle": TRANSMITTED_ANGLES}),
    "ROfRhoAndAngle": TerminalSpec(R, ("rho", "angle"), defaults={"angle": REFLECTED_ANGLES}),
    "TOfRhoAndAngle": TerminalSpec(T, ("rho", "angle"), defaults={"angle": TRANSMITTED_ANGLES}),
    "ROfRhoAndTime": TerminalSpec(R, ("rho", "time")),
    "ROfRhoAndOmega": TerminalSpec(R, ("rho", "omega")),
    "ROfXAndY": TerminalSpec(R, ("x", "y")),
    "TOfXAndY": TerminalSpec(T, ("x", "y")),
    "ROfXAndYAndTime": TerminalSpec(R, ("x", "y", "time")),
    "ROfXAndYAndThetaAndPhi": TerminalSpec(R, ("x", "y", "theta", "phi")),
    "ROfRhoAndMaxDepth": TerminalSpec(R, ("rho", "max_depth")),
    "ROfRhoAndTimeAndMaxDepth": TerminalSpec(R, ("rho", "time", "max_depth")),
    "ROfFx": TerminalSpec(R, ("fx",)),
    "TOfFx": TerminalSpec(T, ("fx",)),
    "ROfFxAndTime": TerminalSpec(R, ("fx", "time")),
    "ROfFxAndAngle": TerminalSpec(
        R, ("fx", "angle"), defaults={"angle": DoubleRange(math.pi / 2, math.pi, 2)}
    ),
}

for _tally_type, _spec in TERMINAL_ESTIMATORS.items():
    register_detector(_tally_type, partial(TerminalEstimator, spec=_spec))
