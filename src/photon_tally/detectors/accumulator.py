"""Flat-buffer accumulators for detector sums.

Every detector tensor is stored as a flat numpy buffer plus a row-major
shape/stride descriptor. Indices are resolved to flat offsets once per event.
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from ..errors import DetectorStateError


def row_major_strides(shape: Sequence[int]) -> Tuple[int, ...]:
    """Element strides of a C-ordered tensor with the given shape."""
    strides = []
    step = 1
    for size in reversed(shape):
        strides.append(step)
        step *= size
    return tuple(reversed(strides))


class Accumulator:
    """Mean, optional second moment and tally count for one tensor.

    Args:
        shape: Per-axis bin counts, () for a scalar
        complex_valued: Use a complex Mean (frequency-domain estimators)
        track_second_moment: Allocate a SecondMoment buffer
    """

    def __init__(
        self,
        shape: Sequence[int],
        complex_valued: bool = False,
        track_second_moment: bool = False,
    ):
        self.shape = tuple(int(s) for s in shape)
        self.strides = row_major_strides(self.shape)
        self.size = int(np.prod(self.shape, dtype=np.int64))
        self.complex_valued = complex_valued
        self.mean = np.zeros(self.size, dtype=np.complex128 if complex_valued else np.float64)
        # Second moment of a complex estimator is |w|^2, always real
        self.second_moment: Optional[np.ndarray] = (
            np.zeros(self.size, dtype=np.float64) if track_second_moment else None
        )
        self.tally_count = 0

    @property
    def tracks_second_moment(self) -> bool:
        return self.second_moment is not None

    def flat_index(self, indices: Sequence[int]) -> int:
        """Flat offset of a full index tuple."""
        return int(sum(i * s for i, s in zip(indices, self.strides)))

    def add(self, flat_index, value) -> None:
        """Add value (scalar or array over flat_index array) to Mean and SecondMoment."""
        self.mean[flat_index] += value
        if self.second_moment is not None:
            self.second_moment[flat_index] += np.abs(value) ** 2

    def add_mean(self, flat_index, value) -> None:
        """Add to Mean only; the second moment is folded separately per photon."""
        self.mean[flat_index] += value

    def add_second_moment(self, flat_index, value) -> None:
        if self.second_moment is not None:
            self.second_moment[flat_index] += value

    def count(self, n: int = 1) -> None:
        self.tally_count += n

    def merge(self, other: "Accumulator") -> None:
        """Elementwise sum of another accumulator of identical layout into this one."""
        if other.shape != self.shape or other.complex_valued != self.complex_valued:
            raise DetectorStateError(
                f"Cannot merge accumulators of shape {other.shape} into {self.shape}"
            )
        if other.tracks_second_moment != self.tracks_second_moment:
            raise DetectorStateError("Cannot merge accumulators with different second-moment tracking")
        self.mean += other.mean
        if self.second_moment is not None:
            self.second_moment += other.second_moment
        self.tally_count += other.tally_count

    def scale(self, num_photons: int, jacobian) -> None:
        """Normalize raw sums by photon count and per-bin measure.

        Mean is divided by N * J and SecondMoment by N * J**2, so that
        ``SecondMoment - |Mean|**2`` is the per-photon variance.

        Args:
            num_photons: Number of photons launched (N)
            jacobian: Per-bin measure (J), broadcastable to the tensor shape
        """
        jacobian = np.broadcast_to(np.asarray(jacobian, dtype=np.float64), self.shape).ravel()
        self.mean /= num_photons * jacobian
        if self.second_moment is not None:
            self.second_moment /= num_photons * jacobian * jacobian

    def mean_array(self) -> np.ndarray:
        return self.mean.reshape(self.shape)

    def second_moment_array(self) -> Optional[np.ndarray]:
        if self.second_moment is None:
            return None
        return self.second_moment.reshape(self.shape)


class PhotonTally:
    """Per-photon sums of a history detector.

    History detectors add to Mean immediately but must square the *whole
    photon's* contribution to each bin for the second moment. This collects
    that contribution until :meth:`flush` at the end of the photon.
    """

    def __init__(self):
        self._bins: Dict[int, complex] = {}

    def __len__(self) -> int:
        return len(self._bins)

    def add(self, flat_index: int, value) -> None:
        self._bins[flat_index] = self._bins.get(flat_index, 0.0) + value

    def flush(self, accumulator: Accumulator) -> None:
        for flat_index, value in self._bins.items():
            accumulator.add_second_moment(flat_index, abs(value) ** 2)
        self._bins.clear()

    def clear(self) -> None:
        self._bins.clear()
