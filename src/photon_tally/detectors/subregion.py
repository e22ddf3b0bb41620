"""Estimators binned by the time a photon spent in each tissue region.

The time in region i is the recorded path length there divided by the speed
of light in that region, L_i / (c / n_i).
"""

from dataclasses import dataclass
from functools import partial
from typing import Dict

import numpy as np

from ..photon_data import Photon, get_time_delay
from ..utils.config import DetectorConfig
from .base import Surface, TerminalDetector, register_detector
from .binning import OUT_OF_RANGE, Axis, jacobian_tensor
from .coordinates import locate_event, resolve_axes, resolve_axis, rho_of

# Shorter times are floating point residue of the path length bookkeeping
MIN_TIME_IN_REGION = 1e-14


def times_in_regions(photon: Photon, tissue) -> np.ndarray:
    """Time (ns) spent in each region according to the collision statistics."""
    return np.array([
        get_time_delay(info.path_length, region.n)
        for info, region in zip(photon.history.collision_info, tissue.regions)
    ])


@register_detector("ReflectedTimeOfRhoAndSubregionHist")
class ReflectedTimeOfRhoAndSubregionHistDetector(TerminalDetector):
    """Histogram of time spent per region by reflected photons, per radial ring.

    Mean[rho, region, time] accumulates exp(-mua_i L_i), the continuous
    absorption weight of region i. FractionalTime[rho, region] is the share of
    each region in the ring's total, filled in at normalization.
    """

    surface = Surface.REFLECTED

    def __init__(self, config: DetectorConfig, tissue):
        self.rho_axis = resolve_axis("rho", config)
        self.time_axis = resolve_axis("time", config)
        self._n_regions = len(tissue.regions)
        region_axis = _region_axis(self._n_regions)
        super().__init__(config, tissue, [self.rho_axis, region_axis, self.time_axis])
        self._fractional_time = self.add_auxiliary(
            "FractionalTime", (self.rho_axis.n_bins, self._n_regions), jacobian=None
        )

    def _tally(self, photon: Photon) -> None:
        irho = self.rho_axis.bin(rho_of(photon.dp))
        if irho == OUT_OF_RANGE:
            return
        strides = self.accumulator.strides
        tallied = False
        for region, (time, info) in enumerate(
            zip(times_in_regions(photon, self.tissue), photon.history.collision_info)
        ):
            if time <= MIN_TIME_IN_REGION:
                continue
            it = self.time_axis.bin(time)
            if it == OUT_OF_RANGE:
                continue
            weight = np.exp(-self.tissue.regions[region].mua * info.path_length)
            self.accumulator.add(irho * strides[0] + region * strides[1] + it * strides[2], weight)
            tallied = True
        if tallied:
            self.accumulator.count()

    def _before_normalize(self) -> None:
        per_region = self.mean.sum(axis=2)
        totals = per_region.sum(axis=1, keepdims=True)
        fractions = np.divide(per_region, totals, out=np.zeros_like(per_region), where=totals > 0)
        self._fractional_time.mean[:] = fractions.ravel()


@dataclass(frozen=True)
class SubregionTimeSpec:
    surface: Surface


class XAndYAndTimeAndSubregionDetector(TerminalDetector):
    """Exit weight binned by position, time in region and region.

    Mean[x, y, time, region] receives the exit weight once for every region
    the photon spent time in. An auxiliary OfXAndY[x, y] tensor receives it
    once per photon.
    """

    def __init__(self, config: DetectorConfig, tissue, spec: SubregionTimeSpec):
        spatial_axes, self._definitions = resolve_axes(("x", "y"), config)
        self.time_axis = resolve_axis("time", config)
        self._n_regions = len(tissue.regions)
        super().__init__(
            config, tissue, [*spatial_axes, self.time_axis, _region_axis(self._n_regions)]
        )
        self.surface = spec.surface
        self._check_aperture_config()
        self._of_x_and_y = self.add_auxiliary(
            "OfXAndY",
            [axis.n_bins for axis in spatial_axes],
            jacobian_tensor(spatial_axes),
            track_second_moment=config.track_second_moment,
        )

    def _tally(self, photon: Photon) -> None:
        if not self.is_within_aperture(photon):
            return
        strides = self.accumulator.strides
        location = locate_event(self.axes[:2], self._definitions, strides[:2], photon.dp)
        if location is None:
            return
        flat_xy = location[0]
        weight = photon.dp.weight
        # Mean shares its leading (x, y) layout with OfXAndY
        self._of_x_and_y.add(flat_xy // strides[1], weight)
        self._of_x_and_y.count()

        tallied = False
        for region, time in enumerate(times_in_regions(photon, self.tissue)):
            if time <= 0.0:
                continue
            it = self.time_axis.bin(time)
            if it == OUT_OF_RANGE:
                continue
            self.accumulator.add(flat_xy + it * strides[2] + region * strides[3], weight)
            tallied = True
        if tallied:
            self.accumulator.count()


def _region_axis(n_regions: int) -> Axis:
    return Axis("region", 0.0, float(n_regions), n_regions + 1)


SUBREGION_TIME_ESTIMATORS: Dict[str, SubregionTimeSpec] = {
    "ROfXAndYAndTimeAndSubregion": SubregionTimeSpec(Surface.REFLECTED),
    "TOfXAndYAndTimeAndSubregion": SubregionTimeSpec(Surface.TRANSMITTED),
}

for _tally_type, _spec in SUBREGION_TIME_ESTIMATORS.items():
    register_detector(_tally_type, partial(XAndYAndTimeAndSubregionDetector, spec=_spec))
