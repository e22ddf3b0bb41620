"""Absorption weighting policies shared by every volumetric estimator.

The weighting type is fixed by the tissue for a whole run. Detectors resolve
it once at construction and evaluate it through :func:`absorbed_weight`.
"""

from enum import Enum
from typing import Union

from ..errors import ConfigurationError, UnsupportedWeightingError
from ..photon_data import PhotonStateType, StatePoint


class AbsorptionWeightingType(Enum):
    """How the transport kernel accounts for absorption."""
    ANALOG = "Analog"
    DISCRETE = "Discrete"
    CONTINUOUS = "Continuous"

    @classmethod
    def parse(cls, value: Union["AbsorptionWeightingType", str]) -> "AbsorptionWeightingType":
        """Resolve a member from itself, its value or its name (case-insensitive).

        Raises:
            ConfigurationError: If value does not name a weighting type
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if key in (member.value.lower(), member.name.lower()):
                    return member
            # Short forms used in tissue input files
            aliases = {"daw": cls.DISCRETE, "caw": cls.CONTINUOUS}
            if key in aliases:
                return aliases[key]
        raise ConfigurationError(f"Unrecognized absorption weighting type: {value!r}")


def absorbed_weight(
    weighting: AbsorptionWeightingType,
    mua: float,
    mus: float,
    previous: StatePoint,
    current: StatePoint,
) -> float:
    """Weight deposited by absorption over the step previous -> current.

    Args:
        weighting: Resolved absorption weighting type
        mua: Absorption coefficient of the region containing current
        mus: Scattering coefficient of the region containing current
        previous: State point at the start of the step
        current: State point at the end of the step

    Returns:
        Absorbed weight for this step, 0 when nothing was deposited

    Raises:
        UnsupportedWeightingError: For continuous weighting, which no
            volumetric estimator implements
    """
    if weighting is AbsorptionWeightingType.ANALOG:
        if not current.has_flag(PhotonStateType.ABSORBED):
            return 0.0
        return _absorbed_fraction(previous.weight, mua, mus)
    elif weighting is AbsorptionWeightingType.DISCRETE:
        # Pseudo-collisions leave the weight untouched
        if previous.weight == current.weight:
            return 0.0
        return _absorbed_fraction(previous.weight, mua, mus)
    elif weighting is AbsorptionWeightingType.CONTINUOUS:
        raise UnsupportedWeightingError(
            "Continuous absorption weighting is not supported by volumetric detectors"
        )
    raise ConfigurationError(f"Unrecognized absorption weighting type: {weighting!r}")


def _absorbed_fraction(weight: float, mua: float, mus: float) -> float:
    mut = mua + mus
    if mut == 0:
        return 0.0
    return weight * mua / mut
