"""Tests for optical properties, photon records, tissue and configuration."""

import dataclasses
import math

import numpy as np
import pytest

from photon_tally import (
    CollisionInfo,
    ConfigurationError,
    DetectorConfig,
    DoubleRange,
    MultiLayerTissue,
    OpticalProperties,
    Photon,
    PhotonHistory,
    PhotonStateType,
    StatePoint,
)
from photon_tally.detectors import AbsorptionWeightingType
from photon_tally.optics import is_within_numerical_aperture
from photon_tally.photon_data import SPEED_OF_LIGHT, get_time_delay
from photon_tally.utils import configs_from_dicts


class TestOpticalProperties:
    """Tests for OpticalProperties class."""

    def test_default_values(self):
        """Test default optical properties."""
        ops = OpticalProperties()
        assert ops.mua == 0.01
        assert ops.mus == 1.0
        assert ops.g == 0.8
        assert ops.n == 1.4

    def test_derived_properties(self):
        """Test derived property calculations."""
        ops = OpticalProperties(mua=0.5, mus=2.0, g=0.5, n=1.33)
        assert ops.mut == 2.5
        assert ops.albedo == 0.8
        assert ops.mean_free_path == 0.4
        assert ops.transport_mus == 1.0

    def test_air(self):
        """Test the non-interacting ambient medium."""
        air = OpticalProperties.air()
        assert air.mut == 0.0
        assert air.albedo == 0.0
        assert math.isinf(air.mean_free_path)
        assert air.n == 1.0

    def test_validation_negative_coefficients(self):
        """Test validation rejects negative coefficients."""
        with pytest.raises(ValueError):
            OpticalProperties(mua=-1.0)
        with pytest.raises(ValueError):
            OpticalProperties(mus=-1.0)

    def test_validation_g_range(self):
        """Test validation of g parameter range."""
        with pytest.raises(ValueError):
            OpticalProperties(g=1.5)
        with pytest.raises(ValueError):
            OpticalProperties(g=-1.5)

    def test_validation_refractive_index(self):
        """Test validation rejects a non-positive refractive index."""
        with pytest.raises(ConfigurationError):
            OpticalProperties(n=0.0)

    def test_immutable(self):
        """Optical properties cannot change during a run."""
        ops = OpticalProperties()
        with pytest.raises(AttributeError):
            ops.mua = 1.0

    def test_fields_are_the_four_coefficients(self):
        """Only mua, mus, g and n are stored, in that order."""
        ops = OpticalProperties(mua=0.1, mus=2.0, g=0.9, n=1.33)
        assert dataclasses.astuple(ops) == (0.1, 2.0, 0.9, 1.33)
        assert not hasattr(ops, "to_array")


class TestPhotonRecords:
    """Tests for state points, histories and photons."""

    def test_state_point_coerces_arrays(self):
        dp = StatePoint((1, 2, 3), (0, 0, 1), weight=0.5, total_time=0.1)
        assert dp.position.dtype == np.float64
        assert (dp.x, dp.y, dp.z) == (1.0, 2.0, 3.0)
        assert dp.uz == 1.0
        assert dp.state_flag == PhotonStateType.ALIVE

    def test_state_point_rejects_bad_shape(self):
        with pytest.raises(ValueError):
            StatePoint((1, 2), (0, 0, 1))

    def test_has_flag(self):
        dp = StatePoint(
            (0, 0, 0), (0, 0, -1),
            state_flag=PhotonStateType.PSEUDO_REFLECTED_TISSUE_BOUNDARY | PhotonStateType.ALIVE,
        )
        assert dp.has_flag(PhotonStateType.PSEUDO_REFLECTED_TISSUE_BOUNDARY)
        assert not dp.has_flag(PhotonStateType.ABSORBED)

    def test_collision_info_validation(self):
        with pytest.raises(ValueError):
            CollisionInfo(number_of_real_collisions=-1)
        with pytest.raises(ValueError):
            CollisionInfo(path_length=-0.1)

    def test_collision_arrays(self):
        history = PhotonHistory(
            collision_info=[CollisionInfo(0, 0.0), CollisionInfo(3, 1.5), CollisionInfo(0, 0.0)]
        )
        collisions, path_lengths = history.collision_arrays()
        assert collisions.dtype == np.int64
        np.testing.assert_array_equal(collisions, [0, 3, 0])
        np.testing.assert_allclose(path_lengths, [0.0, 1.5, 0.0])

    def test_photon_from_history(self):
        points = [StatePoint((0, 0, 0), (0, 0, 1)), StatePoint((0, 0, 1), (0, 0, -1), weight=0.9)]
        photon = Photon.from_history(PhotonHistory.from_points(points), current_region_index=0)
        assert photon.dp is points[-1]
        assert photon.previous_dp is points[0]

    def test_photon_from_empty_history(self):
        with pytest.raises(ConfigurationError):
            Photon.from_history(PhotonHistory())

    def test_time_delay(self):
        """Time is path length over the speed of light in the medium."""
        assert get_time_delay(SPEED_OF_LIGHT, 1.0) == pytest.approx(1.0)
        assert get_time_delay(SPEED_OF_LIGHT, 1.4) == pytest.approx(1.4)


class TestMultiLayerTissue:
    """Tests for the planar layered tissue."""

    def test_regions_include_ambient(self):
        tissue = MultiLayerTissue([OpticalProperties(), OpticalProperties(mua=0.1)], [1.0, 2.0])
        assert tissue.region_count == 4
        assert tissue.regions[0].n == 1.0
        assert tissue.regions[-1].n == 1.0

    def test_region_lookup(self):
        tissue = MultiLayerTissue([OpticalProperties(), OpticalProperties(mua=0.1)], [1.0, 2.0])
        assert tissue.get_region_index((0, 0, -0.5)) == 0
        assert tissue.get_region_index((0, 0, 0.0)) == 1
        assert tissue.get_region_index((0, 0, 0.5)) == 1
        assert tissue.get_region_index((0, 0, 1.0)) == 2
        assert tissue.get_region_index((0, 0, 2.9)) == 2
        assert tissue.get_region_index((0, 0, 3.5)) == 3

    def test_weighting_type_parsed(self):
        tissue = MultiLayerTissue([OpticalProperties()], [1.0], absorption_weighting_type="Analog")
        assert tissue.absorption_weighting_type is AbsorptionWeightingType.ANALOG

    def test_unknown_weighting_type_is_fatal(self):
        with pytest.raises(ConfigurationError):
            MultiLayerTissue([OpticalProperties()], [1.0], absorption_weighting_type="Sometimes")

    def test_layer_validation(self):
        with pytest.raises(ConfigurationError):
            MultiLayerTissue([OpticalProperties()], [1.0, 2.0])
        with pytest.raises(ConfigurationError):
            MultiLayerTissue([OpticalProperties()], [0.0])


class TestNumericalAperture:
    """Tests for the aperture admission helper."""

    def test_unrestricted(self):
        assert is_within_numerical_aperture((1.0, 0.0, 0.0), math.inf, 1.4)

    def test_normal_direction_always_admitted(self):
        assert is_within_numerical_aperture((0.0, 0.0, -1.0), 0.1, 1.4)

    def test_oblique_direction(self):
        direction = (0.6, 0.0, -0.8)
        assert not is_within_numerical_aperture(direction, 0.5, 1.0)
        assert is_within_numerical_aperture(direction, 0.7, 1.0)
        # Refractive index scales the acceptance
        assert not is_within_numerical_aperture(direction, 0.7, 1.4)


class TestDetectorConfig:
    """Tests for DoubleRange and DetectorConfig."""

    def test_double_range(self):
        rng = DoubleRange(0.0, 10.0, 101)
        assert rng.delta == pytest.approx(0.1)
        assert rng.as_array().shape == (101,)

    def test_double_range_validation(self):
        with pytest.raises(ConfigurationError):
            DoubleRange(0.0, 1.0, 0)
        with pytest.raises(ConfigurationError):
            DoubleRange(1.0, 0.0, 11)

    def test_defaults(self):
        config = DetectorConfig("ROfRho")
        assert config.name == "ROfRho"
        assert math.isinf(config.numerical_aperture)
        assert not config.track_second_moment
        assert config.axis("rho", DoubleRange(0.0, 5.0, 6)) == DoubleRange(0.0, 5.0, 6)

    def test_axes_coerced(self):
        config = DetectorConfig("ROfRho", axes={"rho": (0, 5, 51)})
        assert config.axes["rho"] == DoubleRange(0.0, 5.0, 51)

    def test_invalid_aperture(self):
        with pytest.raises(ConfigurationError):
            DetectorConfig("ROfRho", numerical_aperture=-0.1)

    def test_from_dict(self):
        config = DetectorConfig.from_dict({
            "tally_type": "pMCROfRho",
            "name": "perturbed",
            "axes": {"rho": {"start": 0, "stop": 2, "count": 21}},
            "perturbed_ops": [[0.0, 0.0, 1.0, 1.0], {"mua": 0.02, "mus": 1.0, "g": 0.8, "n": 1.4}],
            "perturbed_region_indices": [1],
            "fiber_center": [0, 0, 0],
        })
        assert config.name == "perturbed"
        assert config.axes["rho"].count == 21
        assert config.perturbed_ops[1].mua == 0.02
        assert config.perturbed_ops[0] == OpticalProperties(0.0, 0.0, 1.0, 1.0)
        assert config.fiber_center == (0.0, 0.0, 0.0)

    def test_from_dict_unknown_key(self):
        with pytest.raises(ConfigurationError):
            DetectorConfig.from_dict({"tally_type": "ROfRho", "bins": 10})

    def test_configs_from_dicts(self):
        configs = configs_from_dicts([{"tally_type": "RDiffuse"}, {"tally_type": "ROfRho"}])
        assert [c.name for c in configs] == ["RDiffuse", "ROfRho"]
