# tests/conftest.py
import pytest
import numpy as np

import baofit as bf


class LinearCosmology:
    """Stand-in distance calculator with D(z) = DM(z) = scale * z."""

    def __init__(self, scale=3000.0):
        self.scale = scale

    def line_of_sight_comoving_distance(self, z):
        return self.scale * np.asarray(z, dtype=float)

    def transverse_comoving_scale(self, z):
        return self.scale * np.asarray(z, dtype=float)


def power_law_xi(norm):
    """Synthetic redshift-space correlation function (1 + beta mu^2)^2 norm / r."""
    def xi(r, mu, beta):
        mu = np.asarray(mu, dtype=float)
        return (1 + beta * mu * mu) ** 2 * norm / np.asarray(r, dtype=float)
    return xi


def zero_xi(r, mu, beta):
    return np.zeros(np.broadcast(np.asarray(r), np.asarray(mu)).shape)


@pytest.fixture
def linear_cosmology():
    return LinearCosmology()


@pytest.fixture
def sample_binnings():
    """Small (log-lambda, separation, redshift) binnings."""
    return (
        bf.UniformBinning(5, 0.0, 0.004),
        bf.UniformBinning(4, 0.0, 10.0),
        bf.UniformBinning(2, 1.7, 1.0),
    )


@pytest.fixture
def sample_model():
    return bf.LyaBaoModel(power_law_xi(10.0), power_law_xi(8.0), zref=2.25)


@pytest.fixture
def zero_model():
    """Model predicting zero whenever the broadband coefficients vanish."""
    return bf.LyaBaoModel(zero_xi, zero_xi, zref=2.25)


def fill_dataset(data, values=None, variances=None):
    """Add one observation at every bin center, then a diagonal covariance."""
    ll_bins, sep_bins, z_bins = data.log_lambda_binning, data.separation_binning, data.redshift_binning
    centers = [(ll, sep, z) for ll in ll_bins.centers for sep in sep_bins.centers for z in z_bins.centers]
    values = np.zeros(len(centers)) if values is None else values
    for value, (ll, sep, z) in zip(values, centers):
        data.add_data(value, ll, sep, z)
    data.finalize_data()
    variances = np.ones(data.n_data) if variances is None else variances
    for k, var in enumerate(variances):
        data.add_covariance(k, k, var)
    data.finalize_covariance()
    return data


@pytest.fixture
def three_point_data(linear_cosmology):
    """Three observations with variances 1, 4, 9 and values 1."""
    data = bf.LyaData(
        bf.UniformBinning(3, 0.0, 0.004),
        bf.UniformBinning(1, 0.0, 10.0),
        bf.UniformBinning(1, 2.0, 1.0),
        linear_cosmology,
    )
    return fill_dataset(data, values=np.ones(3), variances=[1.0, 4.0, 9.0])
