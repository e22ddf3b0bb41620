#!/usr/bin/env python3
"""Tally a toy Monte Carlo run in a semi-infinite slab.

A minimal discrete-absorption-weighting random walk stands in for the
transport kernel; it produces the photon records that the detector
controller consumes.

Usage:
    python basic_usage.py
    python basic_usage.py --photons 20000 --mua 0.02 --mus 1.5
    python basic_usage.py --workers 4 --progress
"""

import argparse
import logging
import math

import numpy as np

from photon_tally import (
    CollisionInfo,
    DetectorConfig,
    DetectorController,
    MultiLayerTissue,
    OpticalProperties,
    Photon,
    PhotonHistory,
    PhotonStateType,
    StatePoint,
)
from photon_tally.photon_data import get_time_delay


def sample_henyey_greenstein(direction: np.ndarray, g: float, rng: np.random.Generator) -> np.ndarray:
    """Scatter a unit direction with the Henyey-Greenstein phase function."""
    if g == 0:
        cos_theta = 2 * rng.random() - 1
    else:
        s = (1 - g * g) / (1 - g + 2 * g * rng.random())
        cos_theta = (1 + g * g - s * s) / (2 * g)
    sin_theta = math.sqrt(max(0.0, 1 - cos_theta * cos_theta))
    phi = 2 * math.pi * rng.random()
    ux, uy, uz = direction
    if abs(uz) > 0.99999:
        return np.array([sin_theta * math.cos(phi), sin_theta * math.sin(phi), math.copysign(cos_theta, uz)])
    temp = math.sqrt(1 - uz * uz)
    return np.array([
        sin_theta * (ux * uz * math.cos(phi) - uy * math.sin(phi)) / temp + ux * cos_theta,
        sin_theta * (uy * uz * math.cos(phi) + ux * math.sin(phi)) / temp + uy * cos_theta,
        -sin_theta * math.cos(phi) * temp + uz * cos_theta,
    ])


def random_walk(ops: OpticalProperties, rng: np.random.Generator, max_collisions: int = 2000) -> Photon:
    """Trace one photon through a semi-infinite slab, index matched at z = 0."""
    position = np.zeros(3)
    direction = np.array([0.0, 0.0, 1.0])
    weight = 1.0
    path_length = 0.0
    collisions = 0
    points = [StatePoint(position.copy(), direction.copy())]

    while collisions < max_collisions and weight > 1e-4:
        step = -math.log(rng.random()) / ops.mut
        if direction[2] < 0 and position[2] + step * direction[2] <= 0:
            # Exit through the top surface
            step = -position[2] / direction[2]
            position = position + step * direction
            path_length += step
            points.append(StatePoint(
                position, direction, weight=weight,
                total_time=get_time_delay(path_length, ops.n),
                state_flag=PhotonStateType.PSEUDO_REFLECTED_TISSUE_BOUNDARY,
            ))
            break
        position = position + step * direction
        path_length += step
        collisions += 1
        weight *= ops.albedo
        direction = sample_henyey_greenstein(direction, ops.g, rng)
        points.append(StatePoint(position, direction, weight=weight,
                                 total_time=get_time_delay(path_length, ops.n)))
    else:
        points[-1].state_flag = PhotonStateType.KILLED_RUSSIAN_ROULETTE

    info = [CollisionInfo(), CollisionInfo(collisions, path_length), CollisionInfo()]
    history = PhotonHistory.from_points(points, info)
    region = 0 if points[-1].has_flag(PhotonStateType.PSEUDO_REFLECTED_TISSUE_BOUNDARY) else 1
    return Photon.from_history(history, current_region_index=region)


def main():
    parser = argparse.ArgumentParser(description="Tally a toy Monte Carlo run")
    parser.add_argument("--photons", type=int, default=5000, help="Number of photons")
    parser.add_argument("--mua", type=float, default=0.01, help="Absorption coefficient (1/mm)")
    parser.add_argument("--mus", type=float, default=1.0, help="Scattering coefficient (1/mm)")
    parser.add_argument("--g", type=float, default=0.8, help="Anisotropy")
    parser.add_argument("--workers", type=int, default=1, help="Simulated parallel workers")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--progress", action="store_true", help="Show progress bars")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    ops = OpticalProperties(mua=args.mua, mus=args.mus, g=args.g, n=1.0)
    tissue = MultiLayerTissue([ops], [1e6])
    air = OpticalProperties.air()
    configs = [
        DetectorConfig("RDiffuse"),
        DetectorConfig("ATotal"),
        DetectorConfig("ROfRho", axes={"rho": (0.0, 10.0, 21)}, track_second_moment=True),
        DetectorConfig("ROfFx", axes={"fx": (0.0, 0.5, 11)}),
        DetectorConfig(
            "pMCROfRho",
            name="ROfRho_mua_x2",
            axes={"rho": (0.0, 10.0, 21)},
            perturbed_ops=[air, OpticalProperties(mua=2 * args.mua, mus=args.mus, g=args.g, n=1.0), air],
            perturbed_region_indices=[1],
        ),
    ]

    rng = np.random.default_rng(args.seed)
    photons = [random_walk(ops, rng) for _ in range(args.photons)]

    # Each worker tallies its share into its own controller
    controller = DetectorController(configs, tissue)
    workers = [controller] + [controller.spawn() for _ in range(args.workers - 1)]
    for i, worker in enumerate(workers):
        worker.process(photons[i::len(workers)], progress=args.progress)
    for worker in workers[1:]:
        controller.merge(worker)
    controller.normalize_detectors(len(photons))

    results = controller.results()
    r_diffuse = float(results["RDiffuse"].mean)
    a_total = float(results["ATotal"].mean)
    print(f"Diffuse reflectance: {r_diffuse:.4f}")
    print(f"Total absorption:    {a_total:.4f}")
    print(f"R + A:               {r_diffuse + a_total:.4f}")

    rof_rho = controller.detector("ROfRho")
    error = rof_rho.standard_error(len(photons))
    perturbed = results["ROfRho_mua_x2"].mean
    print("\n rho      R(rho)     SE       R(rho; 2 mua)")
    for rho, value, se, pert in zip(rof_rho.axes[0].centers, rof_rho.mean, error, perturbed):
        print(f"{rho:5.2f}  {value:9.5f}  {se:8.5f}  {pert:9.5f}")

    print("\nR(fx) magnitude:")
    for fx, value in zip(controller.detector("ROfFx").axes[0].values, results["ROfFx"].mean):
        print(f"  fx={fx:.2f}  |R|={abs(value):.4f}")


if __name__ == "__main__":
    main()
