"""
End-to-end BAO fit.

build_binnings -> load_dataset -> LyaBaoLikelihood -> MinuitFitter
(best fit, optional MINOS, optional contours) -> LyaBaoLikelihood.dump
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .binning import TwoStepBinning, UniformBinning
from .core_utils import ConfigurationError, FitConfig, computation_phase
from .cosmology import LambdaCdmUniverse
from .file_handling import load_dataset
from .likelihood import LyaBaoLikelihood
from .minimizer import FitResult, MinuitFitter
from .model import LyaBaoModel

logger = logging.getLogger(__name__)

__all__ = [
    'FitOutput',
    'build_binnings',
    'build_cosmology',
    'run_fit',
]


@dataclass
class FitOutput:
    """Products of run_fit."""
    result: FitResult
    likelihood: LyaBaoLikelihood
    contours: List[np.ndarray] = field(default_factory=list)
    dump_path: Optional[str] = None


def build_binnings(config: FitConfig):
    """(log-lambda, separation, redshift) binnings described by config."""
    if config.dll2 == 0:
        ll_bins = UniformBinning(config.nll, config.minll, config.dll)
    else:
        ll_bins = TwoStepBinning(config.nll, config.minll, config.dll, config.dll2)
    sep_bins = UniformBinning(config.nsep, config.minsep, config.dsep)
    z_bins = UniformBinning(config.nz, config.minz, config.dz)
    return ll_bins, sep_bins, z_bins


def build_cosmology(config: FitConfig) -> LambdaCdmUniverse:
    cosmology = LambdaCdmUniverse(config.omega_lambda, config.omega_matter)
    z = config.zref
    logger.info(f"Cosmology: OmegaLambda = {cosmology.omega_lambda}, OmegaMatter = {cosmology.omega_matter}, "
                f"curvature = {cosmology.curvature:.4g}")
    logger.debug(f"D({z}) = {float(cosmology.line_of_sight_comoving_distance(z)):.2f} Mpc/h, "
                 f"DM({z}) = {float(cosmology.transverse_comoving_scale(z)):.2f} Mpc/h/rad, "
                 f"D1({z}) = {2.5 * cosmology.omega_matter * cosmology.growth_function(z):.4f}")
    return cosmology


def run_fit(config: FitConfig, model: Optional[LyaBaoModel] = None, cosmology=None) -> FitOutput:
    """
    Run a complete fit.

    Parameters
    ----------
    config : FitConfig
        Run configuration. ``data`` is required; ``fiducial`` and
        ``nowiggles`` are required unless a model is given.
    model : LyaBaoModel, optional
        Model to use instead of loading the configured tables.
    cosmology : object, optional
        Distance calculator to use instead of LambdaCdmUniverse.
    """
    if not config.data:
        raise ConfigurationError("Missing required parameter data")
    if model is None:
        if not config.fiducial:
            raise ConfigurationError("Missing required parameter fiducial")
        if not config.nowiggles:
            raise ConfigurationError("Missing required parameter nowiggles")

    with computation_phase("cosmology initialization"):
        if cosmology is None:
            cosmology = build_cosmology(config)
        if model is None:
            model = LyaBaoModel.from_files(config.fiducial, config.nowiggles, config.zref)

    data = load_dataset(config.data, *build_binnings(config), cosmology)

    likelihood = LyaBaoLikelihood(data, model, config.rmin, config.rmax, fix_bao=config.fix_bao,
                                  no_bband=config.no_bband, initial_values=config.initial_values)
    fitter = MinuitFitter(likelihood, max_function_calls=config.max_function_calls,
                          tolerance=config.tolerance, strategy=config.strategy)
    result = fitter.migrad()
    if config.minos:
        result.minos = fitter.minos()

    contours = []
    if config.ncontour > 0 and config.contour_levels and config.contour_pairs:
        contours = fitter.contours(config.contour_levels, config.contour_pairs, config.ncontour)
        minos = result.minos
        result = fitter.result()
        result.minos = minos

    dump_path = None
    if config.dump:
        with computation_phase(f"dumping fit results to {config.dump}"):
            likelihood.dump(config.dump, result.values, contours, config.model_bins,
                            n_contour=config.ncontour if contours else 0)
        dump_path = config.dump

    return FitOutput(result=result, likelihood=likelihood, contours=contours, dump_path=dump_path)
