"""Library of named axes: coordinate extractor, Jacobian and default range.

Estimator tables refer to axes by name only; this module decides how each
name maps a photon onto a number and how its bins are normalized.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError
from ..photon_data import Photon, StatePoint
from ..utils.config import DetectorConfig, DoubleRange
from .binning import OUT_OF_RANGE, Axis, Jacobian


def rho_of(dp: StatePoint) -> float:
    return math.hypot(dp.x, dp.y)


def polar_angle_of(dp: StatePoint) -> float:
    return math.acos(min(1.0, max(-1.0, dp.uz)))


def azimuthal_angle_of(dp: StatePoint) -> float:
    return math.atan2(dp.uy, dp.ux)


def max_depth_of(photon: Photon) -> float:
    """Deepest z reached over the recorded trajectory."""
    points = photon.history.points
    if not points:
        return photon.dp.z
    return max(point.z for point in points)


@dataclass(frozen=True)
class AxisDefinition:
    """How a named axis reads its coordinate and normalizes its bins.

    Attributes:
        coordinate: Maps a StatePoint (or a Photon if of_photon) to the axis
            coordinate. For sampled axes this is the conjugate variable
            (x for spatial frequency, time for temporal frequency).
        jacobian: Normalization measure
        default: Range used when the config does not declare the axis
        sampled: Frequency axis fanned out with exp(-i 2 pi f s)
        of_photon: Coordinate needs the whole photon rather than one point
    """
    coordinate: Optional[Callable]
    jacobian: Jacobian
    default: DoubleRange
    sampled: bool = False
    of_photon: bool = False


AXIS_LIBRARY: Dict[str, AxisDefinition] = {
    "rho": AxisDefinition(rho_of, Jacobian.RADIAL, DoubleRange(0.0, 10.0, 101)),
    "x": AxisDefinition(lambda dp: dp.x, Jacobian.LINEAR, DoubleRange(-10.0, 10.0, 101)),
    "y": AxisDefinition(lambda dp: dp.y, Jacobian.LINEAR, DoubleRange(-10.0, 10.0, 101)),
    "z": AxisDefinition(lambda dp: dp.z, Jacobian.LINEAR, DoubleRange(0.0, 10.0, 101)),
    "time": AxisDefinition(lambda dp: dp.total_time, Jacobian.LINEAR, DoubleRange(0.0, 1.0, 101)),
    "angle": AxisDefinition(polar_angle_of, Jacobian.POLAR, DoubleRange(0.0, math.pi, 3)),
    "theta": AxisDefinition(polar_angle_of, Jacobian.SOLID_ANGLE, DoubleRange(math.pi / 2, math.pi, 5)),
    "phi": AxisDefinition(azimuthal_angle_of, Jacobian.LINEAR, DoubleRange(-math.pi, math.pi, 5)),
    "fx": AxisDefinition(lambda dp: dp.x, Jacobian.NONE, DoubleRange(0.0, 0.5, 51), sampled=True),
    "omega": AxisDefinition(lambda dp: dp.total_time, Jacobian.NONE, DoubleRange(0.05, 1.0, 20), sampled=True),
    "max_depth": AxisDefinition(max_depth_of, Jacobian.NONE, DoubleRange(0.0, 1.0, 101), of_photon=True),
    # Computed by the estimator from the whole trajectory
    "mt": AxisDefinition(None, Jacobian.NONE, DoubleRange(0.0, 500.0, 51)),
    "fractional_mt": AxisDefinition(None, Jacobian.NONE, DoubleRange(0.0, 1.0, 11)),
}


def locate_event(
    axes: Sequence[Axis],
    definitions: Sequence[AxisDefinition],
    strides: Sequence[int],
    dp: StatePoint,
    photon: Optional[Photon] = None,
) -> Optional[Tuple[object, Optional[np.ndarray]]]:
    """Resolve an event to a flat offset and optional frequency phases.

    Args:
        axes: Detector axes
        definitions: AxisDefinition for each axis
        strides: Row-major strides of the detector tensor
        dp: State point the coordinates are read from
        photon: Whole photon, needed by photon-level axes

    Returns:
        (flat_index, phases) where flat_index is an int, or an int array
        spanning the sampled axis when phases is not None. None if any
        binned coordinate falls outside its axis.
    """
    flat = 0
    phases = None
    sampled_stride = 0
    for axis, definition, stride in zip(axes, definitions, strides):
        value = definition.coordinate(photon if definition.of_photon else dp)
        if axis.sampled:
            phases = np.exp(-2j * np.pi * axis.values * value)
            sampled_stride = stride
            continue
        index = axis.bin(value)
        if index == OUT_OF_RANGE:
            return None
        flat += index * stride
    if phases is not None:
        flat = flat + np.arange(phases.size) * sampled_stride
    return flat, phases


def resolve_axes(
    names: Sequence[str],
    config: DetectorConfig,
    defaults: Optional[Mapping[str, DoubleRange]] = None,
) -> Tuple[List[Axis], List[AxisDefinition]]:
    """Resolve a list of axis names; at most one may be a sampled axis."""
    defaults = defaults or {}
    axes = [resolve_axis(name, config, defaults.get(name)) for name in names]
    definitions = [AXIS_LIBRARY[name] for name in names]
    if sum(axis.sampled for axis in axes) > 1:
        raise ConfigurationError(
            f"Detector '{config.name}' declares more than one frequency axis: {list(names)}"
        )
    return axes, definitions


def resolve_axis(
    name: str,
    config: DetectorConfig,
    default: Optional[DoubleRange] = None,
) -> Axis:
    """Build the Axis for name from the config, falling back to defaults.

    Args:
        name: Key into AXIS_LIBRARY
        config: Detector configuration
        default: Estimator-specific default overriding the library default
    """
    try:
        definition = AXIS_LIBRARY[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown axis '{name}' for detector '{config.name}' ({config.tally_type})"
        ) from None
    rng = config.axis(name, default or definition.default)
    if not definition.sampled and rng.count < 2:
        raise ConfigurationError(
            f"Axis '{name}' of detector '{config.name}' needs at least 2 edges, got {rng.count}"
        )
    return Axis.from_range(name, rng, definition.jacobian, definition.sampled)
