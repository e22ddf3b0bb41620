"""Tissue interface consumed by detectors, plus a planar multilayer reference.

Detectors only ever ask a tissue for its region optical properties, its
absorption weighting type and the region containing a position. Geometry and
photon transport live in the transport kernel.
"""

from typing import Sequence, Union

import numpy as np

from .detectors.absorption import AbsorptionWeightingType
from .errors import ConfigurationError
from .optical_properties import OpticalProperties


class Tissue:
    """Minimal tissue description.

    Args:
        regions: Optical properties, one per region
        absorption_weighting_type: Weighting used by the transport kernel
    """

    def __init__(
        self,
        regions: Sequence[OpticalProperties],
        absorption_weighting_type: Union[AbsorptionWeightingType, str] = AbsorptionWeightingType.DISCRETE,
    ):
        if not regions:
            raise ConfigurationError("A tissue needs at least one region")
        self.regions = list(regions)
        self.absorption_weighting_type = AbsorptionWeightingType.parse(absorption_weighting_type)

    @property
    def region_count(self) -> int:
        return len(self.regions)

    def get_region_index(self, position) -> int:
        """Index of the region containing position."""
        raise NotImplementedError


class MultiLayerTissue(Tissue):
    """Stack of planar layers normal to z, bounded by air above and below.

    Region 0 is the air above z = 0 and the last region is the air below the
    deepest layer. Layer i (1-based) occupies [z_{i-1}, z_i).

    Args:
        layers: Optical properties of the tissue layers, top to bottom
        thicknesses: Thickness of each layer (mm)
        absorption_weighting_type: Weighting used by the transport kernel
        ambient: Optical properties of the bounding air regions
    """

    def __init__(
        self,
        layers: Sequence[OpticalProperties],
        thicknesses: Sequence[float],
        absorption_weighting_type: Union[AbsorptionWeightingType, str] = AbsorptionWeightingType.DISCRETE,
        ambient: OpticalProperties = None,
    ):
        if len(layers) != len(thicknesses):
            raise ConfigurationError(
                f"Got {len(layers)} layers but {len(thicknesses)} thicknesses"
            )
        if any(t <= 0 for t in thicknesses):
            raise ConfigurationError(f"Layer thicknesses must be positive, got {list(thicknesses)}")
        ambient = ambient or OpticalProperties.air()
        super().__init__([ambient, *layers, ambient], absorption_weighting_type)
        self.boundaries = np.concatenate([[0.0], np.cumsum(thicknesses, dtype=np.float64)])

    def get_region_index(self, position) -> int:
        z = float(position[2])
        # searchsorted with side="right" puts z on a boundary into the deeper region
        return int(np.searchsorted(self.boundaries, z, side="right"))
