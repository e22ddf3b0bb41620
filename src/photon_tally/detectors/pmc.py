"""pMC and dMC reflectance estimators.

They bin exactly like their plain reflectance counterparts but multiply the
terminal weight by the perturbation (or derivative) factor computed from the
photon's recorded collision statistics.
"""

from dataclasses import dataclass
from functools import partial
from typing import Dict, Optional, Tuple

from ..errors import ConfigurationError
from ..photon_data import Photon
from ..utils.config import DetectorConfig
from .base import Surface, TerminalDetector, register_detector
from .perturbation import Derivative, PerturbationSet, dmc_weight_factor, pmc_weight_factor
from .terminal import TerminalEstimator, TerminalSpec


def build_perturbation_set(config: DetectorConfig, tissue, single_region: bool = False) -> PerturbationSet:
    """Resolve the reference/perturbed properties of a pMC or dMC detector."""
    reference = config.reference_ops if config.reference_ops is not None else tissue.regions
    if len(reference) != len(tissue.regions):
        raise ConfigurationError(
            f"Detector '{config.name}' lists {len(reference)} reference optical properties "
            f"for a tissue with {len(tissue.regions)} regions"
        )
    try:
        return PerturbationSet.from_optical_properties(
            reference, config.perturbed_ops, config.perturbed_region_indices, single_region
        )
    except ConfigurationError as exc:
        raise ConfigurationError(f"Detector '{config.name}' ({config.tally_type}): {exc}") from exc


@dataclass(frozen=True)
class PerturbationSpec:
    """Declaration of one pMC/dMC estimator.

    Attributes:
        axes: Axis names, outermost first
        derivative: None for pMC, else the dMC derivative
    """
    axes: Tuple[str, ...]
    derivative: Optional[Derivative] = None


class PerturbationEstimator(TerminalEstimator):
    """Reflectance estimator reweighted to perturbed optical properties."""

    def __init__(self, config: DetectorConfig, tissue, spec: PerturbationSpec):
        super().__init__(config, tissue, TerminalSpec(Surface.REFLECTED, spec.axes))
        self.derivative = spec.derivative
        self.perturbation = build_perturbation_set(
            config, tissue, single_region=spec.derivative is not None
        )
        self._weighting = self.absorption_weighting_type

    def weight_factor(self, photon: Photon) -> float:
        collisions, path_lengths = photon.history.collision_arrays()
        if self.derivative is None:
            return pmc_weight_factor(self._weighting, collisions, path_lengths, self.perturbation)
        return dmc_weight_factor(
            self.derivative, self._weighting, collisions, path_lengths, self.perturbation
        )


@register_detector("pMCATotal")
class PMCATotalDetector(TerminalDetector):
    """Total absorption under perturbed properties, 1 - perturbed exit weight.

    Contains every terminal point and is normalized by the photon count only.
    """

    def __init__(self, config: DetectorConfig, tissue):
        super().__init__(config, tissue, axes=())
        self.perturbation = build_perturbation_set(config, tissue)
        self._weighting = self.absorption_weighting_type

    def _tally(self, photon: Photon) -> None:
        collisions, path_lengths = photon.history.collision_arrays()
        factor = pmc_weight_factor(self._weighting, collisions, path_lengths, self.perturbation)
        self.accumulator.add(0, 1.0 - photon.dp.weight * factor)
        self.accumulator.count()


PERTURBATION_ESTIMATORS: Dict[str, PerturbationSpec] = {
    "pMCROfRho": PerturbationSpec(("rho",)),
    "pMCROfRhoAndTime": PerturbationSpec(("rho", "time")),
    "pMCROfXAndY": PerturbationSpec(("x", "y")),
    "pMCROfFx": PerturbationSpec(("fx",)),
    "pMCROfFxAndTime": PerturbationSpec(("fx", "time")),
    "dMCdROfRhodMua": PerturbationSpec(("rho",), Derivative.MUA),
    "dMCdROfRhodMus": PerturbationSpec(("rho",), Derivative.MUS),
    "dMCdROfRhoAndTimedMua": PerturbationSpec(("rho", "time"), Derivative.MUA),
    "dMCdROfRhoAndTimedMus": PerturbationSpec(("rho", "time"), Derivative.MUS),
    "dMCdROfFxdMua": PerturbationSpec(("fx",), Derivative.MUA),
    "dMCdROfFxdMus": PerturbationSpec(("fx",), Derivative.MUS),
}

for _tally_type, _spec in PERTURBATION_ESTIMATORS.items():
    register_detector(_tally_type, partial(PerturbationEstimator, spec=_spec))
