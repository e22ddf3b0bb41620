"""Perturbation (pMC) and differential (dMC) Monte Carlo weight factors.

A trajectory recorded with reference optical properties is reweighted to a
perturbed set using only its per-region collision counts k_i and path
lengths L_i:

    factor = prod_i (mus'_i / mus_i)^k_i * exp(-(mut'_i - mut_i) * L_i)

The power and the exponential are evaluated together as
(ratio * exp(-delta * L / k))^k so the per-collision term stays near unity
and neither part overflows for large k.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np
from numba import njit

from ..errors import ConfigurationError, UnsupportedWeightingError
from ..optical_properties import OpticalProperties
from .absorption import AbsorptionWeightingType


class Derivative(Enum):
    """Optical property a dMC estimator differentiates with respect to."""
    MUA = "dMua"
    MUS = "dMus"


@njit(cache=True)
def collision_term(ratio: float, delta_mut: float, path_length: float, n_collisions: int) -> float:
    """ratio^k * exp(-delta_mut * L) in overflow-safe form.

    For k = 0 the power vanishes and only the exponential remains.
    """
    if n_collisions > 0:
        return (ratio * np.exp(-delta_mut * path_length / n_collisions)) ** n_collisions
    return np.exp(-delta_mut * path_length)


@njit(cache=True)
def _discrete_factor(collisions, path_lengths, ref_mua, ref_mus, pert_mua, pert_mus, regions):
    factor = 1.0
    for i in regions:
        ratio = pert_mus[i] / ref_mus[i]
        delta_mut = (pert_mus[i] + pert_mua[i]) - (ref_mus[i] + ref_mua[i])
        factor *= collision_term(ratio, delta_mut, path_lengths[i], collisions[i])
    return factor


@njit(cache=True)
def _continuous_factor(collisions, path_lengths, ref_mua, ref_mus, pert_mua, pert_mus, regions):
    factor = 1.0
    for i in regions:
        ratio = pert_mus[i] / ref_mus[i]
        absorption = np.exp(-(pert_mua[i] - ref_mua[i]) * path_lengths[i])
        factor *= absorption * collision_term(ratio, pert_mus[i] - ref_mus[i], path_lengths[i], collisions[i])
    return factor


@dataclass(frozen=True)
class PerturbationSet:
    """Reference and perturbed optical properties indexed by region.

    Attributes:
        reference_mua, reference_mus: Properties the trajectories were run with
        perturbed_mua, perturbed_mus: Properties to reweight to
        region_indices: Regions whose properties differ
    """
    reference_mua: np.ndarray
    reference_mus: np.ndarray
    perturbed_mua: np.ndarray
    perturbed_mus: np.ndarray
    region_indices: np.ndarray

    @classmethod
    def from_optical_properties(
        cls,
        reference: Sequence[OpticalProperties],
        perturbed: Sequence[OpticalProperties],
        region_indices: Sequence[int],
        single_region: bool = False,
    ) -> "PerturbationSet":
        """Build and validate a perturbation set.

        Args:
            reference: Reference properties, one per region
            perturbed: Perturbed properties, one per region
            region_indices: Perturbed regions
            single_region: Require exactly one perturbed region (dMC)

        Raises:
            ConfigurationError: On inconsistent lengths, out-of-range
                indices or a perturbed region with zero reference mus
        """
        if len(perturbed) != len(reference):
            raise ConfigurationError(
                f"Expected {len(reference)} perturbed optical properties, got {len(perturbed)}"
            )
        if not region_indices:
            raise ConfigurationError("At least one perturbed region index is required")
        if single_region and len(region_indices) != 1:
            raise ConfigurationError(
                f"Differential estimators support exactly one perturbed region, got {list(region_indices)}"
            )
        if len(set(region_indices)) != len(region_indices):
            raise ConfigurationError(f"Duplicate perturbed region indices: {list(region_indices)}")
        for index in region_indices:
            if not 0 <= index < len(reference):
                raise ConfigurationError(
                    f"Perturbed region index {index} is out of range for {len(reference)} regions"
                )
            if reference[index].mus <= 0:
                raise ConfigurationError(
                    f"Perturbed region {index} has zero reference mus and cannot be reweighted"
                )
        return cls(
            reference_mua=np.array([ops.mua for ops in reference], dtype=np.float64),
            reference_mus=np.array([ops.mus for ops in reference], dtype=np.float64),
            perturbed_mua=np.array([ops.mua for ops in perturbed], dtype=np.float64),
            perturbed_mus=np.array([ops.mus for ops in perturbed], dtype=np.float64),
            region_indices=np.array(region_indices, dtype=np.int64),
        )

    @property
    def region_count(self) -> int:
        return self.reference_mua.size


def _check_collision_arrays(perturbation: PerturbationSet, collisions, path_lengths):
    collisions = np.asarray(collisions, dtype=np.int64)
    path_lengths = np.asarray(path_lengths, dtype=np.float64)
    if collisions.size != perturbation.region_count or path_lengths.size != perturbation.region_count:
        raise ValueError(
            f"Collision statistics cover {collisions.size} regions, "
            f"perturbation set has {perturbation.region_count}"
        )
    return collisions, path_lengths


def pmc_weight_factor(
    weighting: AbsorptionWeightingType,
    collisions,
    path_lengths,
    perturbation: PerturbationSet,
) -> float:
    """Factor converting a reference-run weight to the perturbed properties.

    Args:
        weighting: Absorption weighting of the reference run
        collisions: Real collision count per region
        path_lengths: Path length per region
        perturbation: Reference and perturbed properties

    Raises:
        UnsupportedWeightingError: For analog weighting
    """
    collisions, path_lengths = _check_collision_arrays(perturbation, collisions, path_lengths)
    args = (
        collisions, path_lengths,
        perturbation.reference_mua, perturbation.reference_mus,
        perturbation.perturbed_mua, perturbation.perturbed_mus,
        perturbation.region_indices,
    )
    if weighting is AbsorptionWeightingType.DISCRETE:
        return float(_discrete_factor(*args))
    elif weighting is AbsorptionWeightingType.CONTINUOUS:
        return float(_continuous_factor(*args))
    raise UnsupportedWeightingError(
        f"Perturbation Monte Carlo is not defined for {weighting.value} absorption weighting"
    )


def dmc_weight_factor(
    derivative: Derivative,
    weighting: AbsorptionWeightingType,
    collisions,
    path_lengths,
    perturbation: PerturbationSet,
    region: Optional[int] = None,
) -> float:
    """Derivative of the pMC factor with respect to mua or mus of one region.

    The derivative is taken at the perturbed properties, which are the
    reference properties when the set is unperturbed.

    Args:
        derivative: Property to differentiate with respect to
        weighting: Absorption weighting of the reference run
        collisions: Real collision count per region
        path_lengths: Path length per region
        perturbation: Reference and perturbed properties
        region: Region to differentiate in (default: the single perturbed region)
    """
    if weighting is AbsorptionWeightingType.ANALOG:
        raise UnsupportedWeightingError(
            "Differential Monte Carlo is not defined for Analog absorption weighting"
        )
    collisions, path_lengths = _check_collision_arrays(perturbation, collisions, path_lengths)
    i = int(perturbation.region_indices[0]) if region is None else region

    ref_mus = perturbation.reference_mus[i]
    ratio = perturbation.perturbed_mus[i] / ref_mus
    # exp(-dmua L) * (r exp(-dmus L / k))^k == (r exp(-dmut L / k))^k,
    # so one form serves both discrete and continuous weighting
    delta_mut = (
        perturbation.perturbed_mus[i] + perturbation.perturbed_mua[i]
        - (ref_mus + perturbation.reference_mua[i])
    )
    k = int(collisions[i])
    length = float(path_lengths[i])

    base = collision_term(ratio, delta_mut, length, k)
    if derivative is Derivative.MUA:
        return -length * base
    if k == 0:
        return -length * base
    return (k / ref_mus) * collision_term(ratio, delta_mut, length, k - 1) - length * base
