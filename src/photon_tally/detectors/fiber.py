"""Surface fiber detector: reflectance collected by a fiber face on the surface."""

import math

from ..errors import ConfigurationError
from ..optics import is_within_numerical_aperture
from ..photon_data import Photon
from ..utils.config import DetectorConfig
from .base import Surface, TerminalDetector, register_detector


@register_detector("SurfaceFiber")
class SurfaceFiberDetector(TerminalDetector):
    """Scalar reflectance through a circular fiber face lying on the surface.

    A reflected photon is collected when it exits within fiber_radius of
    fiber_center and inside the fiber's acceptance cone, using the fiber's
    refractive index. The result is normalized by the photon count only.
    """

    surface = Surface.REFLECTED

    def __init__(self, config: DetectorConfig, tissue):
        super().__init__(config, tissue, axes=())
        if config.fiber_refractive_index <= 0:
            raise ConfigurationError(
                f"fiber_refractive_index must be positive, got {config.fiber_refractive_index} "
                f"(detector '{config.name}')"
            )
        self.center = tuple(float(c) for c in config.fiber_center)
        self.radius = config.fiber_radius

    def _tally(self, photon: Photon) -> None:
        dp = photon.dp
        if math.hypot(dp.x - self.center[0], dp.y - self.center[1]) > self.radius:
            return
        if not is_within_numerical_aperture(
            dp.direction, self.config.numerical_aperture, self.config.fiber_refractive_index
        ):
            return
        self.accumulator.add(0, dp.weight)
        self.accumulator.count()
