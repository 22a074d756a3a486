import numpy as np
import pytest

import baofit as bf
from baofit.model import BROADBAND_NORMALIZATION

from conftest import power_law_xi


def _params(**overrides):
    values = dict(alpha=3.8, bias=0.17, beta=1.0, bao_ampl=1.0, bao_scale=1.0, bb_a1=0.0, bb_a2=0.0, bb_a3=0.0)
    values.update(overrides)
    return [values[name] for name in bf.PARAMETER_NAMES]


def test_parameter_names():
    assert bf.PARAMETER_NAMES[:3] == ('alpha', 'bias', 'beta')
    assert len(bf.PARAMETER_NAMES) == 8


def test_identical_inputs_ignore_bao_amplitude():
    xi = power_law_xi(10.0)
    model = bf.LyaBaoModel(xi, xi, zref=2.25)
    r, mu, z = np.array([20.0, 80.0]), np.array([0.1, 0.9]), 2.7
    for ampl in (0.0, 1.0, 3.0):
        pred = model.evaluate(r, mu, z, _params(bao_ampl=ampl))
        zfactor = (3.7 / 3.25) ** 3.8
        np.testing.assert_allclose(pred, 0.17**2 * zfactor * xi(r, mu, 1.0))


def test_reference_redshift_has_no_evolution(sample_model):
    r, mu = 50.0, 0.5
    a = sample_model.evaluate(r, mu, 2.25, _params(alpha=0.0))
    b = sample_model.evaluate(r, mu, 2.25, _params(alpha=7.0))
    assert a == pytest.approx(b)


def test_amplitude_blends_fiducial_and_nowiggles(sample_model):
    r, mu, z = 40.0, 0.3, 2.25
    nw_only = sample_model.evaluate(r, mu, z, _params(bao_ampl=0.0))
    full = sample_model.evaluate(r, mu, z, _params(bao_ampl=1.0))
    double = sample_model.evaluate(r, mu, z, _params(bao_ampl=2.0))
    assert nw_only == pytest.approx(0.17**2 * power_law_xi(8.0)(r, mu, 1.0))
    assert full == pytest.approx(0.17**2 * power_law_xi(10.0)(r, mu, 1.0))
    assert double - full == pytest.approx(full - nw_only)


def test_scale_stretches_separation(sample_model):
    r, mu, z = 40.0, 0.3, 2.25
    stretched = sample_model.evaluate(r, mu, z, _params(bao_scale=1.25))
    assert stretched == pytest.approx(sample_model.evaluate(1.25 * r, mu, z, _params()))


def test_broadband(sample_model):
    assert BROADBAND_NORMALIZATION == (1e-1, 1e-3, 1e-5)
    assert sample_model.broadband(10.0, 1.0, 0.0, 0.0) == pytest.approx(1e-3)
    assert sample_model.broadband(10.0, 0.0, 1.0, 0.0) == pytest.approx(1e-4)
    assert sample_model.broadband(10.0, 0.0, 0.0, 1.0) == pytest.approx(1e-5)


def test_broadband_adds_to_prediction(sample_model):
    r, mu, z = 30.0, 0.7, 2.0
    base = sample_model.evaluate(r, mu, z, _params())
    shifted = sample_model.evaluate(r, mu, z, _params(bb_a1=2.0, bb_a2=-1.0, bb_a3=4.0))
    assert shifted - base == pytest.approx(sample_model.broadband(r, 2.0, -1.0, 4.0))


def test_evaluate_is_pure(sample_model):
    r, mu = np.linspace(10, 190, 7), np.linspace(0, 1, 7)
    first = sample_model.evaluate(r, mu, 2.2, _params(beta=0.5))
    sample_model.evaluate(r, mu, 2.2, _params(beta=2.0))
    np.testing.assert_array_equal(sample_model.evaluate(r, mu, 2.2, _params(beta=0.5)), first)


def test_from_files(tmp_path):
    r = np.linspace(1, 400, 80)
    for name, norm in (("fid", 2.0), ("nw", 1.0)):
        for ell in (0, 2, 4):
            np.savetxt(tmp_path / f"{name}.{ell}.dat", np.column_stack([r, norm * np.ones_like(r)]))
    model = bf.LyaBaoModel.from_files(str(tmp_path / "fid"), str(tmp_path / "nw"), zref=2.25)
    assert model.n_parameters == 8
    pred = model.evaluate(100.0, 0.0, 2.25, _params(beta=0.0, bias=1.0, bao_ampl=0.5))
    assert pred == pytest.approx(1.5)
