"""
Tests for the cosmology collaborators.
"""

import numpy as np
import pytest
from scipy.integrate import quad

from baofit import cosmology
from baofit.core_utils import ConfigurationError, MalformedInputError, ModelRangeError


@pytest.fixture(scope="module")
def flat_universe():
    return cosmology.LambdaCdmUniverse(0.734, 0.266)


@pytest.fixture(scope="module")
def eds_universe():
    return cosmology.LambdaCdmUniverse(0.0, 1.0)


class TestLambdaCdmUniverse:

    def test_distance_matches_direct_integration(self, flat_universe):
        for z in (0.5, 2.25, 3.0):
            integral, _ = quad(lambda zz: 1.0 / flat_universe.hubble_ratio(zz), 0, z)
            expected = cosmology.HUBBLE_DISTANCE * integral
            assert flat_universe.line_of_sight_comoving_distance(z) == pytest.approx(expected, rel=1e-6)

    def test_flat_transverse_scale_equals_distance(self, flat_universe):
        z = np.array([1.7, 2.2, 2.7])
        np.testing.assert_allclose(flat_universe.transverse_comoving_scale(z),
                                   flat_universe.line_of_sight_comoving_distance(z))

    def test_einstein_de_sitter_distance(self, eds_universe):
        z = 3.0
        expected = 2 * cosmology.HUBBLE_DISTANCE * (1 - 1 / np.sqrt(1 + z))
        assert eds_universe.line_of_sight_comoving_distance(z) == pytest.approx(expected, rel=1e-6)

    def test_einstein_de_sitter_growth(self, eds_universe):
        assert 2.5 * eds_universe.growth_function(0.0) == pytest.approx(1.0, rel=1e-6)
        ratio = eds_universe.growth_function(1.0) / eds_universe.growth_function(0.0)
        assert ratio == pytest.approx(0.5, rel=1e-6)

    def test_growth_is_vectorized(self, flat_universe):
        z = np.array([0.0, 1.0, 2.25])
        growth = flat_universe.growth_function(z)
        assert growth.shape == (3,)
        assert growth[1] == pytest.approx(flat_universe.growth_function(1.0))
        assert np.all(np.diff(growth) < 0)

    def test_curvature(self):
        open_universe = cosmology.LambdaCdmUniverse(0.0, 0.3)
        closed_universe = cosmology.LambdaCdmUniverse(0.8, 0.5)
        assert open_universe.curvature == pytest.approx(0.7)
        for universe, compare in ((open_universe, np.greater), (closed_universe, np.less)):
            distance = universe.line_of_sight_comoving_distance(2.0)
            assert compare(universe.transverse_comoving_scale(2.0), distance)

    def test_redshift_out_of_range(self, flat_universe):
        with pytest.raises(ModelRangeError):
            flat_universe.line_of_sight_comoving_distance(11.0)
        with pytest.raises(ModelRangeError):
            flat_universe.transverse_comoving_scale(-0.1)

    def test_invalid_construction(self):
        with pytest.raises(ConfigurationError):
            cosmology.LambdaCdmUniverse(0.7, 0.0)


class TestCorrelationFunctions:

    def test_tabulated_reproduces_linear_data(self):
        r = np.linspace(10, 200, 20)
        xi = cosmology.TabulatedCorrelationFunction(r, 2 * r + 1)
        assert xi(55.5) == pytest.approx(112.0)
        np.testing.assert_allclose(xi(r), 2 * r + 1)

    def test_tabulated_out_of_range(self):
        r = np.linspace(10, 200, 20)
        xi = cosmology.TabulatedCorrelationFunction(r, np.ones_like(r))
        with pytest.raises(ModelRangeError):
            xi(5.0)
        with pytest.raises(ModelRangeError):
            xi(np.array([50.0, 250.0]))

    def test_tabulated_invalid(self):
        with pytest.raises(ConfigurationError):
            cosmology.TabulatedCorrelationFunction([1.0, 3.0, 2.0], [0.0, 0.0, 0.0])

    def test_rsd_without_distortion_is_monopole(self):
        xi = cosmology.RsdCorrelationFunction(lambda r: 1.0 / r, lambda r: 5.0, lambda r: 7.0)
        assert xi(10.0, 0.3, 0.0) == pytest.approx(0.1)

    def test_rsd_angular_average_is_scaled_monopole(self):
        beta = 1.4
        xi = cosmology.RsdCorrelationFunction(lambda r: 2.0, lambda r: 3.0, lambda r: 4.0)
        average, _ = quad(lambda mu: xi(50.0, mu, beta), 0, 1)
        c0, _, _ = cosmology.RsdCorrelationFunction.coefficients(beta)
        assert average == pytest.approx(2.0 * c0)

    def test_rsd_kaiser_limit(self):
        c0, c2, c4 = cosmology.RsdCorrelationFunction.coefficients(1.0)
        assert c0 == pytest.approx(1 + 2 / 3 + 1 / 5)
        assert c2 == pytest.approx(4 / 3 + 4 / 7)
        assert c4 == pytest.approx(8 / 35)


class TestLoading:

    def test_load_table(self, tmp_path):
        r = np.linspace(1, 100, 12)
        np.savetxt(tmp_path / "xi.dat", np.column_stack([r, 3 * r]))
        xi = cosmology.load_correlation_function(tmp_path / "xi.dat")
        assert xi(50.0) == pytest.approx(150.0)

    def test_missing_table(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            cosmology.load_correlation_function(tmp_path / "missing.dat")

    def test_malformed_table(self, tmp_path):
        path = tmp_path / "bad.dat"
        path.write_text("1 2\nthree four\n5 6\n")
        with pytest.raises(MalformedInputError):
            cosmology.load_correlation_function(path)

    def test_load_multipoles(self, tmp_path):
        r = np.linspace(1, 300, 50)
        for ell, norm in zip((0, 2, 4), (1.0, 0.5, 0.25)):
            np.savetxt(tmp_path / f"fid.{ell}.dat", np.column_stack([r, norm * np.ones_like(r)]))
        xi = cosmology.load_rsd_correlation_function(str(tmp_path / "fid"))
        assert isinstance(xi, cosmology.RsdCorrelationFunction)
        assert xi(100.0, 0.5, 0.0) == pytest.approx(1.0)
