"""Geometric admission tests used by aperture-gated detectors."""

import math

import numpy as np


def is_within_numerical_aperture(direction, numerical_aperture: float, refractive_index: float) -> bool:
    """Check whether a direction lies inside the acceptance cone of an aperture.

    The cone axis is the boundary normal (z). A direction is accepted when
    n * sin(theta) <= NA, theta being its angle to the normal.

    Args:
        direction: Unit direction (ux, uy, uz)
        numerical_aperture: Aperture NA (inf accepts every direction)
        refractive_index: Refractive index on the side the direction is measured in

    Returns:
        True if the direction is admitted
    """
    if math.isinf(numerical_aperture):
        return True
    uz = float(np.clip(direction[2], -1.0, 1.0))
    sin_theta = math.sqrt(max(0.0, 1.0 - uz * uz))
    return refractive_index * sin_theta <= numerical_aperture
