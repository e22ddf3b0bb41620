"""Configuration records for detectors."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError
from ..optical_properties import OpticalProperties


@dataclass(frozen=True)
class DoubleRange:
    """Evenly spaced range of count points from start to stop.

    Used as a binning axis with count - 1 bins, or as a list of count
    sample values for frequency axes.
    """
    start: float = 0.0
    stop: float = 1.0
    count: int = 2

    def __post_init__(self):
        if int(self.count) != self.count or self.count < 1:
            raise ConfigurationError(f"count must be a positive integer, got {self.count}")
        if self.count > 1 and not self.stop > self.start:
            raise ConfigurationError(
                f"stop ({self.stop}) must be greater than start ({self.start})"
            )

    @property
    def delta(self) -> float:
        if self.count < 2:
            return 0.0
        return (self.stop - self.start) / (self.count - 1)

    def as_array(self) -> np.ndarray:
        return np.linspace(self.start, self.stop, self.count)

    @classmethod
    def coerce(cls, value: Any) -> "DoubleRange":
        """Accept a DoubleRange, a (start, stop, count) sequence or a mapping."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(float(value["start"]), float(value["stop"]), int(value["count"]))
        start, stop, count = value
        return cls(float(start), float(stop), int(count))


@dataclass
class DetectorConfig:
    """Configuration for one detector.

    Attributes:
        tally_type: Registered estimator type, e.g. "ROfRho"
        name: User-assigned name, unique within a run (default: tally_type)
        axes: Binning axes by name ("rho", "time", "fx", ...); missing axes
            take the estimator's defaults
        track_second_moment: Whether to accumulate the second moment
        numerical_aperture: Aperture of aperture-gated detectors (default: unrestricted)
        target_region_index: Region whose boundary the aperture test refers to
        reference_ops: Reference optical properties for pMC/dMC (default: tissue regions)
        perturbed_ops: Perturbed optical properties for pMC/dMC, one per region
        perturbed_region_indices: Regions whose properties are perturbed
        fiber_center: Center of a surface fiber (mm)
        fiber_radius: Radius of a surface fiber (mm)
        fiber_refractive_index: Refractive index of a surface fiber
    """

    tally_type: str
    name: Optional[str] = None
    axes: Dict[str, DoubleRange] = field(default_factory=dict)
    track_second_moment: bool = False
    numerical_aperture: float = math.inf
    target_region_index: int = 0
    reference_ops: Optional[List[OpticalProperties]] = None
    perturbed_ops: List[OpticalProperties] = field(default_factory=list)
    perturbed_region_indices: List[int] = field(default_factory=list)
    fiber_center: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    fiber_radius: float = 0.6
    fiber_refractive_index: float = 1.4

    def __post_init__(self):
        """Validate configuration and fill derived values."""
        if not self.tally_type:
            raise ConfigurationError("tally_type must be a non-empty string")
        if self.name is None:
            self.name = self.tally_type

        self.axes = {name: DoubleRange.coerce(rng) for name, rng in self.axes.items()}

        if math.isnan(self.numerical_aperture) or self.numerical_aperture < 0:
            raise ConfigurationError(
                f"numerical_aperture must be non-negative, got {self.numerical_aperture} "
                f"(detector '{self.name}')"
            )
        if self.target_region_index < 0:
            raise ConfigurationError(
                f"target_region_index must be >= 0, got {self.target_region_index} "
                f"(detector '{self.name}')"
            )
        if self.fiber_radius <= 0:
            raise ConfigurationError(f"fiber_radius must be positive, got {self.fiber_radius}")
        if len(self.fiber_center) != 3:
            raise ConfigurationError(f"fiber_center must have 3 components, got {self.fiber_center}")

        self.perturbed_region_indices = [int(i) for i in self.perturbed_region_indices]
        self.perturbed_ops = [self._to_ops(ops) for ops in self.perturbed_ops]
        if self.reference_ops is not None:
            self.reference_ops = [self._to_ops(ops) for ops in self.reference_ops]

    def axis(self, name: str, default: DoubleRange) -> DoubleRange:
        """Get the configured range for an axis, falling back to default."""
        return self.axes.get(name, default)

    @staticmethod
    def _to_ops(value: Any) -> OpticalProperties:
        if isinstance(value, OpticalProperties):
            return value
        if isinstance(value, Mapping):
            return OpticalProperties(**value)
        return OpticalProperties(*value)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DetectorConfig":
        """Build a config from a plain mapping such as parsed JSON.

        Keys use the attribute names; axes map to [start, stop, count] lists
        or {"start", "stop", "count"} mappings.
        """
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown detector config keys: {sorted(unknown)}")
        kwargs = dict(data)
        if "fiber_center" in kwargs:
            kwargs["fiber_center"] = tuple(float(c) for c in kwargs["fiber_center"])
        return cls(**kwargs)


def configs_from_dicts(entries: Sequence[Mapping[str, Any]]) -> List[DetectorConfig]:
    """Build a list of detector configs, e.g. from a JSON array."""
    return [DetectorConfig.from_dict(entry) for entry in entries]
