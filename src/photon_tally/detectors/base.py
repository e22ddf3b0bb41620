"""Shared detector machinery: lifecycle, normalization, merging and registry.

Concrete estimators only decide *where* an event lands and *how much* it
weighs; everything else (storage, Jacobians, second moments, guards against
misuse after normalization) lives here.
"""

import logging
import math
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError, DetectorStateError
from ..optics import is_within_numerical_aperture
from ..photon_data import Photon, PhotonStateType, StatePoint
from ..utils.config import DetectorConfig
from .absorption import AbsorptionWeightingType
from .accumulator import Accumulator, PhotonTally
from .binning import Axis, jacobian_tensor

logger = logging.getLogger(__name__)


class TallyKind(Enum):
    """When the controller calls a detector."""
    TERMINAL = "terminal"
    HISTORY = "history"


class Surface(Enum):
    """Which terminal points a surface detector accepts."""
    REFLECTED = "reflected"
    TRANSMITTED = "transmitted"
    ANY = "any"

    def contains(self, dp: StatePoint) -> bool:
        if self is Surface.REFLECTED:
            return dp.has_flag(PhotonStateType.PSEUDO_REFLECTED_TISSUE_BOUNDARY)
        if self is Surface.TRANSMITTED:
            return dp.has_flag(PhotonStateType.PSEUDO_TRANSMITTED_TISSUE_BOUNDARY)
        return True


# Maps tally type -> callable(config, tissue) returning a Detector
DETECTOR_REGISTRY: Dict[str, Callable] = {}


def register_detector(tally_type: str, builder: Optional[Callable] = None):
    """Register a detector builder for a tally type.

    Can be called directly or used as a class decorator:

        @register_detector("SurfaceFiber")
        class SurfaceFiberDetector(TerminalDetector):
            ...
    """
    def decorator(fn):
        if tally_type in DETECTOR_REGISTRY:
            raise ValueError(f"Tally type '{tally_type}' is already registered")
        DETECTOR_REGISTRY[tally_type] = fn
        return fn

    if builder is not None:
        return decorator(builder)
    return decorator


@dataclass
class DetectorResult:
    """Read-only view of a detector for reporting.

    Arrays are row-major in the order given by axis_names.
    """
    name: str
    tally_type: str
    shape: Tuple[int, ...]
    axis_names: List[str]
    mean: np.ndarray
    second_moment: Optional[np.ndarray]
    tally_count: int
    auxiliary: Dict[str, np.ndarray] = field(default_factory=dict)
    auxiliary_second_moment: Dict[str, np.ndarray] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "tally_type": self.tally_type,
            "shape": list(self.shape),
            "axis_names": list(self.axis_names),
            "mean": self.mean,
            "second_moment": self.second_moment,
            "tally_count": self.tally_count,
            "auxiliary": dict(self.auxiliary),
            "auxiliary_second_moment": dict(self.auxiliary_second_moment),
        }


class Detector:
    """Base class of all detectors.

    Args:
        config: Detector configuration
        tissue: Tissue the run simulates
        axes: Binning axes, outermost first
        complex_valued: Accumulate a complex Mean
    """

    kind = TallyKind.TERMINAL

    def __init__(self, config: DetectorConfig, tissue, axes: Sequence[Axis], complex_valued: bool = False):
        self.config = config
        self.tissue = tissue
        self.name = config.name
        self.tally_type = config.tally_type
        self.axes = tuple(axes)
        self.track_second_moment = config.track_second_moment
        self.accumulator = Accumulator(
            [axis.n_bins for axis in self.axes],
            complex_valued=complex_valued,
            track_second_moment=self.track_second_moment,
        )
        self._jacobian = jacobian_tensor(self.axes)
        self._auxiliary: Dict[str, Tuple[Accumulator, Optional[np.ndarray]]] = {}
        self._normalized = False
        logger.debug("Built %s detector '%s' with shape %s", self.tally_type, self.name, self.shape)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.accumulator.shape

    @property
    def mean(self) -> np.ndarray:
        return self.accumulator.mean_array()

    @property
    def second_moment(self) -> Optional[np.ndarray]:
        return self.accumulator.second_moment_array()

    @property
    def tally_count(self) -> int:
        return self.accumulator.tally_count

    @property
    def is_normalized(self) -> bool:
        return self._normalized

    @property
    def absorption_weighting_type(self) -> AbsorptionWeightingType:
        return AbsorptionWeightingType.parse(self.tissue.absorption_weighting_type)

    def add_auxiliary(self, name: str, shape: Sequence[int], jacobian: Optional[np.ndarray],
                      track_second_moment: bool = False) -> Accumulator:
        """Allocate a secondary tensor.

        Args:
            name: Key the tensor is reported under
            shape: Tensor shape
            jacobian: Per-bin measure used by normalize, or None for derived
                tensors that normalize must leave untouched
            track_second_moment: Allocate a second moment for it
        """
        accumulator = Accumulator(shape, track_second_moment=track_second_moment)
        if jacobian is not None:
            jacobian = np.asarray(jacobian, dtype=np.float64)
        self._auxiliary[name] = (accumulator, jacobian)
        return accumulator

    def auxiliary(self, name: str) -> np.ndarray:
        return self._auxiliary[name][0].mean_array()

    def contains_point(self, dp: StatePoint) -> bool:
        return True

    def _ensure_raw(self, action: str) -> None:
        if self._normalized:
            raise DetectorStateError(
                f"Detector '{self.name}' ({self.tally_type}) is already normalized; cannot {action}"
            )

    def normalize(self, num_photons: int) -> None:
        """Convert raw sums into physical quantities. Allowed exactly once.

        Args:
            num_photons: Total number of photons launched in the run

        Raises:
            DetectorStateError: If the detector was already normalized
        """
        self._ensure_raw("normalize")
        if num_photons <= 0:
            raise ValueError(f"num_photons must be positive, got {num_photons}")
        if self.tally_count == 0:
            warnings.warn(
                f"Detector '{self.name}' recorded no events before normalization",
                RuntimeWarning,
                stacklevel=2,
            )
        self._before_normalize()
        self.accumulator.scale(num_photons, self._jacobian)
        for accumulator, jacobian in self._auxiliary.values():
            if jacobian is not None:
                accumulator.scale(num_photons, jacobian)
        self._normalized = True
        logger.debug("Normalized detector '%s' by %d photons", self.name, num_photons)

    def _before_normalize(self) -> None:
        """Hook for quantities derived from the raw sums."""

    def merge(self, other: "Detector") -> None:
        """Add the raw sums of a detector built from the same config into this one."""
        self._ensure_raw("merge")
        other._ensure_raw("be merged")
        if other.tally_type != self.tally_type or other.name != self.name:
            raise DetectorStateError(
                f"Cannot merge detector '{other.name}' ({other.tally_type}) "
                f"into '{self.name}' ({self.tally_type})"
            )
        self.accumulator.merge(other.accumulator)
        for name, (accumulator, _) in self._auxiliary.items():
            accumulator.merge(other._auxiliary[name][0])
        logger.debug("Merged %d events into detector '%s'", other.tally_count, self.name)

    def standard_error(self, num_photons: int) -> np.ndarray:
        """Standard error of the normalized Mean.

        Raises:
            DetectorStateError: Before normalization or without a second moment
        """
        if not self._normalized:
            raise DetectorStateError(f"Detector '{self.name}' must be normalized first")
        if self.second_moment is None:
            raise DetectorStateError(f"Detector '{self.name}' does not track the second moment")
        variance = self.second_moment - np.abs(self.mean) ** 2
        return np.sqrt(np.clip(variance, 0.0, None) / num_photons)

    def results(self) -> DetectorResult:
        return DetectorResult(
            name=self.name,
            tally_type=self.tally_type,
            shape=self.shape,
            axis_names=[axis.name for axis in self.axes],
            mean=self.mean.copy(),
            second_moment=None if self.second_moment is None else self.second_moment.copy(),
            tally_count=self.tally_count,
            auxiliary={name: acc.mean_array().copy() for name, (acc, _) in self._auxiliary.items()},
            auxiliary_second_moment={
                name: acc.second_moment_array().copy()
                for name, (acc, _) in self._auxiliary.items()
                if acc.tracks_second_moment
            },
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, tally_type={self.tally_type!r}, shape={self.shape})"


class TerminalDetector(Detector):
    """Detector called once per photon with its terminal record."""

    kind = TallyKind.TERMINAL
    surface = Surface.ANY

    def contains_point(self, dp: StatePoint) -> bool:
        return self.surface.contains(dp)

    def tally(self, photon: Photon) -> None:
        self._ensure_raw("tally")
        self._tally(photon)

    def _tally(self, photon: Photon) -> None:
        raise NotImplementedError

    def _check_aperture_config(self) -> None:
        """Validate the aperture parameters against the tissue."""
        region = self.config.target_region_index
        if region >= len(self.tissue.regions):
            raise ConfigurationError(
                f"target_region_index {region} of detector '{self.name}' is out of range "
                f"for a tissue with {len(self.tissue.regions)} regions"
            )
        if self.config.numerical_aperture == 0:
            warnings.warn(
                f"Detector '{self.name}' has numerical_aperture 0 and admits only normal exits",
                RuntimeWarning,
                stacklevel=3,
            )

    def is_within_aperture(self, photon: Photon) -> bool:
        """Aperture admission test for the photon's exit direction."""
        na = self.config.numerical_aperture
        if math.isinf(na):
            return True
        target = self.config.target_region_index
        if photon.current_region_index == target:
            dp = photon.dp
            n = self.tissue.regions[photon.current_region_index].n
        else:
            dp = photon.previous_dp or photon.dp
            n = self.tissue.regions[target].n
        return is_within_numerical_aperture(dp.direction, na, n)


class HistoryDetector(Detector):
    """Detector called for every consecutive pair of trajectory points.

    Mean is updated on every pair; the second moment is taken over whole
    photons and folded in by :meth:`end_photon`.
    """

    kind = TallyKind.HISTORY

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._photon_tally = PhotonTally()

    def tally(self, previous: StatePoint, current: StatePoint, region_index: int) -> None:
        self._ensure_raw("tally")
        self._tally(previous, current, region_index)

    def _tally(self, previous: StatePoint, current: StatePoint, region_index: int) -> None:
        raise NotImplementedError

    def _add(self, flat_index, value) -> None:
        self.accumulator.add_mean(flat_index, value)
        if self.track_second_moment:
            if np.ndim(flat_index):
                for index, v in zip(flat_index, value):
                    self._photon_tally.add(int(index), v)
            else:
                self._photon_tally.add(int(flat_index), value)

    def end_photon(self) -> None:
        """Close the current photon: fold its per-bin sums into the second moment."""
        self._photon_tally.flush(self.accumulator)

    def discard_photon(self) -> None:
        """Drop the current photon's partial sums without touching the second moment."""
        self._photon_tally.clear()
