# baofit/__init__.py
"""
baofit: BAO fits to the Lyman-alpha forest 3D correlation function.
"""

__version__ = "0.1.0"

# Core user-facing objects
from .core_utils import (
    FitConfig,
    BaoFitError,
    ConfigurationError,
    ContractViolation,
    BinRangeError,
    MalformedInputError,
    ModelRangeError,
    CovarianceError,
    error_scale_for_cl,
)
from .binning import UniformBinning, VariableBinning, TwoStepBinning
from .cosmology import LambdaCdmUniverse, RsdCorrelationFunction
from .dataset import LyaData
from .model import LyaBaoModel, PARAMETER_NAMES
from .likelihood import LyaBaoLikelihood, Parameter
from .minimizer import MinuitFitter, FitResult
from .file_handling import load_dataset, read_fit_dump
from .driver import run_fit

# Advanced users can access submodules
from . import geometry
from . import packed

__all__ = [
    # Main workflow
    'FitConfig',
    'run_fit',
    'load_dataset',
    'read_fit_dump',

    # Essential objects
    'UniformBinning',
    'VariableBinning',
    'TwoStepBinning',
    'LambdaCdmUniverse',
    'RsdCorrelationFunction',
    'LyaData',
    'LyaBaoModel',
    'LyaBaoLikelihood',
    'Parameter',
    'PARAMETER_NAMES',
    'MinuitFitter',
    'FitResult',

    # Errors
    'BaoFitError',
    'ConfigurationError',
    'ContractViolation',
    'BinRangeError',
    'MalformedInputError',
    'ModelRangeError',
    'CovarianceError',
    'error_scale_for_cl',

    # Submodules
    'geometry',
    'packed',

    # Package info
    '__version__',
]
