"""
End-to-end tests of run_fit on synthetic inputs.
"""

import numpy as np
import pytest

import baofit as bf
from baofit.core_utils import ConfigurationError, FitConfig
from baofit.driver import build_binnings, run_fit

from conftest import fill_dataset


TRUTH = {'alpha': 3.5, 'bias': 0.2, 'beta': 1.2, 'bao_ampl': 1.0, 'bao_scale': 1.0,
         'bb_a1': 1.0, 'bb_a2': 0.0, 'bb_a3': 0.0}

BINNING = dict(minll=0.0, dll=0.004, nll=5, minsep=0.0, dsep=10.0, nsep=4, minz=1.7, dz=1.0, nz=2)


def write_synthetic_data(prefix, config, model, cosmology, params, sigma=1e-4):
    """Write <prefix>.params and <prefix>.cov with values equal to the model prediction."""
    template = fill_dataset(bf.LyaData(*build_binnings(config), cosmology))
    values = model.evaluate(template.radius, template.cos_angle, template.redshift, params)
    ll_bins, sep_bins, z_bins = build_binnings(config)
    centers = [(ll, sep, z) for ll in ll_bins.centers for sep in sep_bins.centers for z in z_bins.centers]
    with open(f"{prefix}.params", "w") as f:
        for value, (ll, sep, z) in zip(values, centers):
            f.write(f"{float(value)!r} 0.0 | Lya covariance 3D ({float(ll)!r},{float(sep)!r},{float(z)!r})\n")
    with open(f"{prefix}.cov", "w") as f:
        for k in range(len(values)):
            f.write(f"{k} {k} {sigma**2!r}\n")
    return values


@pytest.fixture
def synthetic_prefix(tmp_path, sample_model, linear_cosmology):
    prefix = str(tmp_path / "synthetic")
    params = [TRUTH[name] for name in bf.PARAMETER_NAMES]
    write_synthetic_data(prefix, FitConfig(**BINNING), sample_model, linear_cosmology, params)
    return prefix


def test_build_binnings():
    ll_bins, sep_bins, z_bins = build_binnings(FitConfig(**BINNING))
    assert isinstance(ll_bins, bf.UniformBinning)
    assert (ll_bins.n_bins, sep_bins.n_bins, z_bins.n_bins) == (5, 4, 2)
    two_step, _, _ = build_binnings(FitConfig(minll=0.002, dll=0.004, dll2=0.001, nll=8))
    assert isinstance(two_step, bf.TwoStepBinning)
    assert two_step.get_bin_center(0) == 0.0


def test_recovers_truth(tmp_path, synthetic_prefix, sample_model, linear_cosmology):
    dump = tmp_path / "fit.dat"
    config = FitConfig(data=synthetic_prefix, fix_bao=True, ncontour=0, dump=str(dump), model_bins=4, **BINNING)
    output = run_fit(config, model=sample_model, cosmology=linear_cosmology)

    values = dict(zip(output.result.names, output.result.values))
    for name in ('alpha', 'bias', 'beta', 'bb_a1'):
        assert values[name] == pytest.approx(TRUTH[name], rel=1e-3, abs=1e-3)
    assert output.contours == []
    assert output.dump_path == str(dump)

    result_file = bf.read_fit_dump(dump)
    assert result_file.n_data == 40
    assert result_file.model_r3d.shape == (2, 4, 4)
    np.testing.assert_array_equal(result_file.params, output.result.values)


def test_contours_and_minos(tmp_path, synthetic_prefix, sample_model, linear_cosmology):
    dump = tmp_path / "fit.dat"
    config = FitConfig(data=synthetic_prefix, fix_bao=True, minos=True, ncontour=5, contour_levels=(0.95,),
                       contour_pairs=((3, 1),), dump=str(dump), model_bins=3, **BINNING)
    output = run_fit(config, model=sample_model, cosmology=linear_cosmology)
    assert set(output.result.minos) == {'alpha', 'bias', 'beta', 'bb_a1'}
    assert len(output.contours) == 1
    result_file = bf.read_fit_dump(dump)
    assert result_file.contours.shape == (1, 5, 2)
    # bao_ampl is fixed so the boundary collapses onto the best fit
    np.testing.assert_allclose(result_file.contours[0, :, 0], 1.0)


def test_missing_inputs(sample_model):
    with pytest.raises(ConfigurationError, match="data"):
        run_fit(FitConfig())
    with pytest.raises(ConfigurationError, match="fiducial"):
        run_fit(FitConfig(data="somewhere"))


def test_missing_data_files(tmp_path, sample_model, linear_cosmology):
    config = FitConfig(data=str(tmp_path / "nothing"), **BINNING)
    with pytest.raises(FileNotFoundError):
        run_fit(config, model=sample_model, cosmology=linear_cosmology)
