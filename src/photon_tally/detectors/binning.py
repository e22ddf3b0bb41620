"""Binning axes, bin lookup and normalization Jacobians."""

from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Sequence

import numpy as np
from numba import njit

from ..utils.config import DoubleRange

# Returned by which_bin for values outside the axis
OUT_OF_RANGE = -1


@njit(cache=True)
def which_bin(value: float, bin_count: int, delta: float, start: float) -> int:
    """Index of the bin containing value, or OUT_OF_RANGE.

    Args:
        value: Coordinate to bin
        bin_count: Number of bins on the axis
        delta: Bin width
        start: Lower edge of bin 0

    Returns:
        floor((value - start) / delta) if it lies in [0, bin_count), else -1
    """
    index = np.floor((value - start) / delta)
    # Written so that NaN also lands out of range
    if not (index >= 0.0 and index < bin_count):
        return -1
    return int(index)


class Jacobian(Enum):
    """Geometric measure of one bin, used to turn sums into densities."""
    NONE = "none"
    LINEAR = "linear"
    RADIAL = "radial"
    POLAR = "polar"
    SOLID_ANGLE = "solid_angle"


@dataclass(frozen=True)
class Axis:
    """One binning axis of a detector.

    Binned axes have count - 1 bins between start and stop. Sampled axes
    (spatial or temporal frequencies) hold count discrete values and fan a
    single event out over all of them.

    Attributes:
        name: Axis name as used in DetectorConfig.axes
        start: First edge (binned) or first sample (sampled)
        stop: Last edge or last sample
        count: Number of edges or samples
        jacobian: Normalization measure for this axis
        sampled: True for frequency axes
    """
    name: str
    start: float
    stop: float
    count: int
    jacobian: Jacobian = Jacobian.NONE
    sampled: bool = False

    @classmethod
    def from_range(cls, name: str, rng: DoubleRange, jacobian: Jacobian = Jacobian.NONE,
                   sampled: bool = False) -> "Axis":
        return cls(name, rng.start, rng.stop, rng.count, jacobian, sampled)

    @property
    def n_bins(self) -> int:
        return self.count if self.sampled else self.count - 1

    @property
    def delta(self) -> float:
        if self.count < 2:
            return 0.0
        return (self.stop - self.start) / (self.count - 1)

    @property
    def centers(self) -> np.ndarray:
        """Bin centers (binned axes) or sample values (sampled axes)."""
        if self.sampled:
            return self.values
        return self.start + (np.arange(self.n_bins) + 0.5) * self.delta

    @property
    def values(self) -> np.ndarray:
        return np.linspace(self.start, self.stop, self.count)

    def bin(self, value: float) -> int:
        return which_bin(float(value), self.n_bins, self.delta, self.start)

    def jacobian_weights(self) -> np.ndarray:
        """Per-bin measure J along this axis."""
        if self.jacobian is Jacobian.NONE:
            return np.ones(self.n_bins)
        if self.jacobian is Jacobian.LINEAR:
            return np.full(self.n_bins, self.delta)
        if self.jacobian is Jacobian.RADIAL:
            return 2.0 * np.pi * self.centers * self.delta
        if self.jacobian is Jacobian.POLAR:
            return 2.0 * np.pi * np.sin(self.centers) * self.delta
        if self.jacobian is Jacobian.SOLID_ANGLE:
            return np.sin(self.centers) * self.delta
        raise ValueError(f"Unknown Jacobian kind: {self.jacobian}")


def jacobian_tensor(axes: Sequence[Axis]) -> np.ndarray:
    """Outer product of the per-axis Jacobians, shaped like the detector."""
    return reduce(np.multiply.outer, [axis.jacobian_weights() for axis in axes], np.ones(()))
