"""Records produced by the transport kernel and consumed by detectors.

A photon is described by its terminal state point plus, for detectors that
need it, the ordered trajectory and per-region collision statistics.
"""

from dataclasses import dataclass, field
from enum import IntFlag
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError

# Speed of light in vacuum (mm/ns)
SPEED_OF_LIGHT = 299.792458


class PhotonStateType(IntFlag):
    """Boundary and termination flags attached to a state point."""
    NONE = 0
    ALIVE = 1
    ABSORBED = 2
    PSEUDO_REFLECTED_TISSUE_BOUNDARY = 4
    PSEUDO_TRANSMITTED_TISSUE_BOUNDARY = 8
    PSEUDO_SPECULAR_TISSUE_BOUNDARY = 16
    KILLED_OVER_MAXIMUM_PATH_LENGTH = 32
    KILLED_OVER_MAXIMUM_COLLISIONS = 64
    KILLED_RUSSIAN_ROULETTE = 128


@dataclass
class StatePoint:
    """Photon state at one point of its trajectory.

    Attributes:
        position: (x, y, z) in mm
        direction: Unit direction cosines (ux, uy, uz)
        weight: Photon weight (0..1)
        total_time: Elapsed time since launch (ns)
        state_flag: Boundary/absorption flags
    """
    position: np.ndarray
    direction: np.ndarray
    weight: float = 1.0
    total_time: float = 0.0
    state_flag: PhotonStateType = PhotonStateType.ALIVE

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64)
        self.direction = np.asarray(self.direction, dtype=np.float64)
        if self.position.shape != (3,) or self.direction.shape != (3,):
            raise ValueError(
                f"position and direction must have 3 components, got "
                f"{self.position.shape} and {self.direction.shape}"
            )
        self.state_flag = PhotonStateType(self.state_flag)

    @property
    def x(self) -> float:
        return float(self.position[0])

    @property
    def y(self) -> float:
        return float(self.position[1])

    @property
    def z(self) -> float:
        return float(self.position[2])

    @property
    def ux(self) -> float:
        return float(self.direction[0])

    @property
    def uy(self) -> float:
        return float(self.direction[1])

    @property
    def uz(self) -> float:
        return float(self.direction[2])

    def has_flag(self, flag: PhotonStateType) -> bool:
        """Check whether any bit of flag is set on this point."""
        return bool(self.state_flag & flag)


@dataclass
class CollisionInfo:
    """Collision statistics for one tissue region over a whole trajectory."""
    number_of_real_collisions: int = 0
    path_length: float = 0.0

    def __post_init__(self):
        if self.number_of_real_collisions < 0:
            raise ValueError(
                f"number_of_real_collisions must be >= 0, got {self.number_of_real_collisions}"
            )
        if self.path_length < 0:
            raise ValueError(f"path_length must be >= 0, got {self.path_length}")


@dataclass
class PhotonHistory:
    """Ordered trajectory of a photon together with its collision statistics.

    The trajectory includes pseudo-collision points (boundary crossings) at
    which the weight does not change.
    """
    points: List[StatePoint] = field(default_factory=list)
    collision_info: List[CollisionInfo] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def previous_point(self) -> Optional[StatePoint]:
        """Second to last point, or None for trajectories shorter than two points."""
        if len(self.points) < 2:
            return None
        return self.points[-2]

    def collision_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (collision counts, path lengths) indexed by region."""
        collisions = np.array(
            [info.number_of_real_collisions for info in self.collision_info], dtype=np.int64
        )
        path_lengths = np.array(
            [info.path_length for info in self.collision_info], dtype=np.float64
        )
        return collisions, path_lengths

    @classmethod
    def from_points(
        cls,
        points: Sequence[StatePoint],
        collision_info: Optional[Sequence[CollisionInfo]] = None,
    ) -> "PhotonHistory":
        return cls(points=list(points), collision_info=list(collision_info or []))


@dataclass
class Photon:
    """Terminal record of one photon as handed to terminal detectors.

    Attributes:
        dp: Terminal state point (exit or absorption)
        history: Recorded trajectory and collision statistics
        current_region_index: Region the photon occupies when it is tallied
    """
    dp: StatePoint
    history: PhotonHistory = field(default_factory=PhotonHistory)
    current_region_index: int = 0

    @property
    def previous_dp(self) -> Optional[StatePoint]:
        return self.history.previous_point

    @classmethod
    def from_history(cls, history: PhotonHistory, current_region_index: int = 0) -> "Photon":
        """Build a photon whose terminal point is the last trajectory point."""
        if not history.points:
            raise ConfigurationError("Cannot build a photon from an empty trajectory")
        return cls(
            dp=history.points[-1],
            history=history,
            current_region_index=current_region_index,
        )


def get_time_delay(path_length: float, refractive_index: float) -> float:
    """Time (ns) to travel path_length (mm) in a medium of refractive index n."""
    return path_length / (SPEED_OF_LIGHT / refractive_index)
