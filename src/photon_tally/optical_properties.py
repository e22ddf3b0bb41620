"""Optical properties of a homogeneous tissue region."""

from dataclasses import dataclass

from .errors import ConfigurationError


@dataclass(frozen=True)
class OpticalProperties:
    """Optical properties of one tissue region.

    Every region of a tissue (including the ambient air regions above and
    below it) carries one of these. They are fixed for the whole run.

    Attributes:
        mua: Absorption coefficient (1/mm)
        mus: Scattering coefficient (1/mm)
        g: Henyey-Greenstein anisotropy (-1 to 1)
        n: Refractive index

    Example:
        >>> ops = OpticalProperties(mua=0.01, mus=1.0, g=0.8, n=1.4)
        >>> ops.albedo
        0.990099009...
        >>> round(ops.transport_mus, 6)
        0.2
    """
    mua: float = 0.01
    mus: float = 1.0
    g: float = 0.8
    n: float = 1.4

    def __post_init__(self):
        """Validate optical properties."""
        if self.mua < 0:
            raise ConfigurationError(f"mua must be non-negative, got {self.mua}")
        if self.mus < 0:
            raise ConfigurationError(f"mus must be non-negative, got {self.mus}")
        if not -1 <= self.g <= 1:
            raise ConfigurationError(f"g must be in [-1, 1], got {self.g}")
        if self.n <= 0:
            raise ConfigurationError(f"n must be positive, got {self.n}")

    @property
    def mut(self) -> float:
        """Total attenuation coefficient."""
        return self.mua + self.mus

    @property
    def albedo(self) -> float:
        """Single-scattering albedo, 0 for a non-interacting region."""
        if self.mut == 0:
            return 0.0
        return self.mus / self.mut

    @property
    def mean_free_path(self) -> float:
        """Mean distance between interactions (inf for air)."""
        if self.mut == 0:
            return float("inf")
        return 1.0 / self.mut

    @property
    def transport_mus(self) -> float:
        """Reduced scattering coefficient mus' = mus * (1 - g)."""
        return self.mus * (1.0 - self.g)

    @classmethod
    def air(cls) -> "OpticalProperties":
        """Non-scattering, non-absorbing ambient medium."""
        return cls(mua=0.0, mus=0.0, g=1.0, n=1.0)
