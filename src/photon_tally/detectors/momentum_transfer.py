"""Momentum-transfer histograms of reflected and transmitted photons.

The momentum transfer of a real collision is 1 - cos(theta), theta being the
angle between the photon's direction into and out of the collision. The
estimator sums it per tissue region over the recorded trajectory and bins
the exit weight by the total.
"""

from dataclasses import dataclass
from functools import partial
from typing import Dict, Sequence, Tuple

import numpy as np

from ..photon_data import Photon, StatePoint
from ..utils.config import DetectorConfig
from .base import Surface, TerminalDetector, register_detector
from .binning import OUT_OF_RANGE
from .coordinates import locate_event, resolve_axes, resolve_axis


def subregion_momentum_transfer(points: Sequence[StatePoint], tissue) -> Tuple[np.ndarray, bool]:
    """Momentum transfer accumulated in each region along a trajectory.

    A point is a real collision when the weight changed on the step into it;
    the outgoing direction is read from the following point, so the last
    point never contributes.

    Args:
        points: Ordered trajectory
        tissue: Tissue providing region lookup

    Returns:
        (per-region momentum transfer, whether any real collision was seen)
    """
    momentum = np.zeros(len(tissue.regions))
    collided = False
    for previous, current, following in zip(points, points[1:], points[2:]):
        if previous.weight == current.weight:
            continue
        region = tissue.get_region_index(current.position)
        momentum[region] += 1.0 - float(np.dot(current.direction, following.direction))
        collided = True
    return momentum, collided


@dataclass(frozen=True)
class MomentumTransferSpec:
    surface: Surface
    spatial_axes: Tuple[str, ...]


class MomentumTransferDetector(TerminalDetector):
    """Exit weight binned by position and total momentum transfer.

    Also keeps FractionalMT[spatial..., mt, region, fraction]: the exit
    weight binned by the share of the total momentum transfer picked up in
    each region. Fraction bin 0 holds shares of exactly 0 and the last bin
    shares of exactly 1.
    """

    def __init__(self, config: DetectorConfig, tissue, spec: MomentumTransferSpec):
        spatial_axes, self._definitions = resolve_axes(spec.spatial_axes, config)
        self.mt_axis = resolve_axis("mt", config)
        self.fraction_axis = resolve_axis("fractional_mt", config)
        super().__init__(config, tissue, [*spatial_axes, self.mt_axis])
        self.surface = spec.surface
        self._check_aperture_config()

        self._n_regions = len(tissue.regions)
        self._n_fractions = self.fraction_axis.count + 1
        trailing = np.ones((self._n_regions, self._n_fractions))
        self._fractional = self.add_auxiliary(
            "FractionalMT",
            self.shape + trailing.shape,
            np.multiply.outer(self._jacobian, trailing),
        )

    def _fraction_bin(self, fraction: float) -> int:
        if fraction == 0.0:
            return 0
        if fraction == 1.0:
            return self.fraction_axis.count
        index = self.fraction_axis.bin(fraction)
        return OUT_OF_RANGE if index == OUT_OF_RANGE else index + 1

    def _tally(self, photon: Photon) -> None:
        if not self.is_within_aperture(photon):
            return
        strides = self.accumulator.strides
        location = locate_event(self.axes[:-1], self._definitions, strides[:-1], photon.dp, photon)
        if location is None:
            return
        momentum, collided = subregion_momentum_transfer(photon.history.points, self.tissue)
        total = float(momentum.sum())
        if not collided or total <= 0.0:
            return
        imt = self.mt_axis.bin(total)
        if imt == OUT_OF_RANGE:
            return

        flat_index = location[0] + imt * strides[-1]
        weight = photon.dp.weight
        self.accumulator.add(flat_index, weight)
        self.accumulator.count()

        base = flat_index * self._n_regions * self._n_fractions
        for region, value in enumerate(momentum):
            ifrac = self._fraction_bin(value / total)
            if ifrac == OUT_OF_RANGE:
                continue
            self._fractional.add(base + region * self._n_fractions + ifrac, weight)


MOMENTUM_TRANSFER_ESTIMATORS: Dict[str, MomentumTransferSpec] = {
    "ReflectedMTOfRhoAndSubregionHist": MomentumTransferSpec(Surface.REFLECTED, ("rho",)),
    "ReflectedMTOfXAndYAndSubregionHist": MomentumTransferSpec(Surface.REFLECTED, ("x", "y")),
    "TransmittedMTOfRhoAndSubregionHist": MomentumTransferSpec(Surface.TRANSMITTED, ("rho",)),
    "TransmittedMTOfXAndYAndSubregionHist": MomentumTransferSpec(Surface.TRANSMITTED, ("x", "y")),
}

for _tally_type, _spec in MOMENTUM_TRANSFER_ESTIMATORS.items():
    register_detector(_tally_type, partial(MomentumTransferDetector, spec=_spec))
