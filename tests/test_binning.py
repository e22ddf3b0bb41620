"""Tests for bin lookup, Jacobians and accumulators."""

import math

import numpy as np
import pytest

from photon_tally.detectors import (
    OUT_OF_RANGE,
    Accumulator,
    Axis,
    Jacobian,
    PhotonTally,
    jacobian_tensor,
    which_bin,
)
from photon_tally.detectors.accumulator import row_major_strides
from photon_tally.errors import DetectorStateError


class TestWhichBin:
    """Tests for which_bin."""

    def test_first_and_last_bin(self):
        assert which_bin(0.05, 100, 0.1, 0.0) == 0
        assert which_bin(9.95, 100, 0.1, 0.0) == 99

    def test_interior(self):
        assert which_bin(2.55, 100, 0.1, 0.0) == 25

    def test_out_of_range(self):
        assert which_bin(-0.01, 100, 0.1, 0.0) == OUT_OF_RANGE
        assert which_bin(10.5, 100, 0.1, 0.0) == OUT_OF_RANGE

    def test_upper_edge_is_excluded(self):
        assert which_bin(1.0, 10, 0.1, 0.0) == OUT_OF_RANGE

    def test_offset_start(self):
        assert which_bin(-9.95, 200, 0.1, -10.0) == 0

    def test_nan_is_out_of_range(self):
        assert which_bin(float("nan"), 10, 0.1, 0.0) == OUT_OF_RANGE


class TestAxis:
    """Tests for Axis geometry and Jacobians."""

    def test_binned_axis(self):
        axis = Axis("rho", 0.0, 10.0, 101, Jacobian.RADIAL)
        assert axis.n_bins == 100
        assert axis.delta == pytest.approx(0.1)
        assert axis.centers[0] == pytest.approx(0.05)
        assert axis.bin(0.05) == 0

    def test_sampled_axis(self):
        axis = Axis("fx", 0.0, 0.5, 3, sampled=True)
        assert axis.n_bins == 3
        np.testing.assert_allclose(axis.centers, [0.0, 0.25, 0.5])

    def test_radial_jacobian(self):
        """Annulus area 2 pi rho delta at the bin center."""
        axis = Axis("rho", 0.0, 10.0, 101, Jacobian.RADIAL)
        weights = axis.jacobian_weights()
        assert weights[0] == pytest.approx(2 * math.pi * 0.05 * 0.1)
        assert weights[10] == pytest.approx(2 * math.pi * 1.05 * 0.1)

    def test_polar_jacobian(self):
        axis = Axis("angle", 0.0, math.pi, 3, Jacobian.POLAR)
        delta = math.pi / 2
        np.testing.assert_allclose(
            axis.jacobian_weights(),
            [2 * math.pi * math.sin(math.pi / 4) * delta, 2 * math.pi * math.sin(3 * math.pi / 4) * delta],
        )

    def test_solid_angle_jacobian(self):
        axis = Axis("theta", 0.0, math.pi, 3, Jacobian.SOLID_ANGLE)
        np.testing.assert_allclose(
            axis.jacobian_weights(), np.sin([math.pi / 4, 3 * math.pi / 4]) * math.pi / 2
        )

    def test_linear_and_none(self):
        np.testing.assert_allclose(Axis("z", 0.0, 1.0, 11, Jacobian.LINEAR).jacobian_weights(), 0.1)
        np.testing.assert_allclose(
            Axis("fx", 0.0, 1.0, 4, Jacobian.NONE, sampled=True).jacobian_weights(), np.ones(4)
        )

    def test_jacobian_tensor_is_outer_product(self):
        rho = Axis("rho", 0.0, 1.0, 3, Jacobian.RADIAL)
        z = Axis("z", 0.0, 2.0, 5, Jacobian.LINEAR)
        tensor = jacobian_tensor([rho, z])
        assert tensor.shape == (2, 4)
        np.testing.assert_allclose(tensor, np.outer(rho.jacobian_weights(), z.jacobian_weights()))

    def test_jacobian_tensor_scalar(self):
        assert jacobian_tensor([]).shape == ()


class TestAccumulator:
    """Tests for the flat-buffer accumulator."""

    def test_strides(self):
        assert row_major_strides((4, 3, 2)) == (6, 2, 1)
        assert row_major_strides(()) == ()

    def test_flat_index_matches_numpy(self):
        acc = Accumulator((4, 3, 2))
        assert acc.flat_index((2, 1, 1)) == np.ravel_multi_index((2, 1, 1), (4, 3, 2))

    def test_scalar(self):
        acc = Accumulator(())
        acc.add(0, 2.0)
        assert acc.mean_array().shape == ()
        assert acc.mean_array() == 2.0

    def test_second_moment_absent_when_untracked(self):
        acc = Accumulator((3,))
        acc.add(1, 2.0)
        assert acc.second_moment is None
        assert acc.second_moment_array() is None

    def test_second_moment_tracked(self):
        acc = Accumulator((3,), track_second_moment=True)
        acc.add(1, 2.0)
        acc.add(1, 3.0)
        np.testing.assert_allclose(acc.second_moment_array(), [0.0, 13.0, 0.0])
        assert acc.second_moment_array().shape == acc.mean_array().shape

    def test_complex_second_moment_is_real(self):
        acc = Accumulator((2,), complex_valued=True, track_second_moment=True)
        acc.add(np.array([0, 1]), 0.5 * np.exp(-1j * np.array([0.3, 1.7])))
        assert acc.second_moment.dtype == np.float64
        np.testing.assert_allclose(acc.second_moment, [0.25, 0.25])

    def test_merge(self):
        a = Accumulator((2,), track_second_moment=True)
        b = Accumulator((2,), track_second_moment=True)
        a.add(0, 1.0)
        a.count()
        b.add(0, 2.0)
        b.add(1, 3.0)
        b.count(2)
        a.merge(b)
        np.testing.assert_allclose(a.mean, [3.0, 3.0])
        np.testing.assert_allclose(a.second_moment, [5.0, 9.0])
        assert a.tally_count == 3

    def test_merge_shape_mismatch(self):
        with pytest.raises(DetectorStateError):
            Accumulator((2,)).merge(Accumulator((3,)))

    def test_scale(self):
        """Mean is divided by N * J and SecondMoment by N * J**2."""
        acc = Accumulator((2,), track_second_moment=True)
        acc.add(0, 4.0)
        acc.add(1, 3.0)
        acc.scale(2, np.array([2.0, 1.0]))
        np.testing.assert_allclose(acc.mean, [1.0, 1.5])
        np.testing.assert_allclose(acc.second_moment, [16.0 / (2 * 4.0), 9.0 / 2])

    def test_scale_keeps_per_photon_variance(self):
        """One hit out of two photons leaves SecondMoment above Mean squared."""
        acc = Accumulator((1,), track_second_moment=True)
        acc.add(0, 1.0)
        acc.scale(2, 0.5)
        assert acc.mean[0] == pytest.approx(1.0)
        assert acc.second_moment[0] == pytest.approx(2.0)
        assert acc.second_moment[0] - acc.mean[0] ** 2 == pytest.approx(1.0)


class TestPhotonTally:
    """Tests for per-photon second-moment collection."""

    def test_squares_whole_photon(self):
        acc = Accumulator((2,), track_second_moment=True)
        scratch = PhotonTally()
        scratch.add(0, 1.0)
        scratch.add(0, 2.0)
        scratch.add(1, 0.5)
        scratch.flush(acc)
        np.testing.assert_allclose(acc.second_moment, [9.0, 0.25])
        assert len(scratch) == 0

    def test_clear_discards_partial_sums(self):
        acc = Accumulator((2,), track_second_moment=True)
        scratch = PhotonTally()
        scratch.add(0, 5.0)
        scratch.clear()
        assert len(scratch) == 0
        scratch.add(1, 2.0)
        scratch.flush(acc)
        np.testing.assert_allclose(acc.second_moment, [0.0, 4.0])
