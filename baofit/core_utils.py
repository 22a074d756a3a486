"""
Core utilities for the BAO fit.

Configuration, error types and context managers shared by the data,
model and likelihood modules.
"""

import time
import logging

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import chi2

logger = logging.getLogger(__name__)

# ============================================================================
# Errors
# ============================================================================


class BaoFitError(Exception):
    """Base class for all errors raised by baofit."""


class ConfigurationError(BaoFitError, ValueError):
    """Invalid construction parameters (binning, fit window, options)."""


class ContractViolation(BaoFitError, RuntimeError):
    """A programming or data error: double fills, lifecycle misuse, bad lookups."""


class BinRangeError(ContractViolation, IndexError):
    """A value or index falls outside of a binning."""


class ModelRangeError(BaoFitError, ValueError):
    """A model input falls outside the range covered by its tables."""


class MalformedInputError(BaoFitError, ValueError):
    """An input record could not be parsed."""

    def __init__(self, message, filename=None, line_number=None, line=None):
        self.filename = filename
        self.line_number = line_number
        self.line = line
        if line_number is not None:
            where = f"{filename} line {line_number}" if filename else f"line {line_number}"
            message = f"{message} at {where}: '{line}'"
        super().__init__(message)


class CovarianceError(BaoFitError, np.linalg.LinAlgError):
    """Cholesky factorization or inversion of the covariance failed."""

    def __init__(self, stage, info):
        self.stage = stage
        self.info = info
        super().__init__(f"Covariance {stage} failed with LAPACK info = {info}")


# ============================================================================
# Configuration
# ============================================================================

# Probability content of +-1 sigma for a Gaussian
ONE_SIGMA_CL = 0.6826894921370859

DEFAULT_CONTOUR_PAIRS = (
    (5, 6), (4, 6), (1, 6),
    (5, 3), (4, 3), (1, 3),
    (5, 2), (4, 2), (1, 2),
)


def error_scale_for_cl(cl: float, ndof: int = 2) -> float:
    """
    Chi-square increase that bounds a confidence region.

    Parameters
    ----------
    cl : float
        Confidence level in (0, 1).
    ndof : int
        Number of jointly constrained parameters (2 for contours).

    Returns
    -------
    float
        Quantile of the chi-square distribution, e.g. 2.29575 for
        cl=ONE_SIGMA_CL and 5.99146 for cl=0.95 at ndof=2.
    """
    if not 0 < cl < 1:
        raise ConfigurationError(f"Confidence level must be in (0,1), got {cl}")
    return float(chi2(ndof).ppf(cl))


@dataclass
class FitConfig:
    """Configuration parameters for a BAO fit."""

    # Homogeneous cosmology
    omega_lambda: float = 0.734
    omega_matter: float = 0.266

    # Model inputs
    fiducial: str = ""
    nowiggles: str = ""
    zref: float = 2.25

    # Data inputs
    data: str = ""

    # Binning
    minll: float = 0.0002
    dll: float = 0.004
    dll2: float = 0.0
    nll: int = 14
    minsep: float = 0.0
    dsep: float = 10.0
    nsep: int = 14
    minz: float = 1.7
    dz: float = 1.0
    nz: int = 2

    # Fit window in Mpc/h
    rmin: float = 0.0
    rmax: float = 200.0

    # Parameters
    fix_bao: bool = False
    no_bband: bool = False
    initial_values: Dict[str, float] = field(default_factory=dict)

    # Minimizer
    max_function_calls: Optional[int] = None
    tolerance: float = 0.1
    strategy: int = 1
    minos: bool = False

    # Contours
    ncontour: int = 40
    contour_levels: Sequence[float] = (0.95, ONE_SIGMA_CL)
    contour_pairs: Sequence[Tuple[int, int]] = DEFAULT_CONTOUR_PAIRS

    # Output
    dump: str = ""
    model_bins: int = 200

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.omega_matter == 0:
            self.omega_matter = 1 - self.omega_lambda
        if self.omega_matter <= 0:
            raise ConfigurationError("omega_matter must be positive")
        if self.rmax <= self.rmin:
            raise ConfigurationError(f"rmax ({self.rmax}) must be larger than rmin ({self.rmin})")
        for name in ("nll", "nsep", "nz"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        for name in ("dll", "dsep", "dz"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.dll2 < 0:
            raise ConfigurationError("dll2 must be non-negative")
        if self.model_bins < 2:
            raise ConfigurationError("model_bins must be at least 2")
        if self.ncontour < 0:
            raise ConfigurationError("ncontour must be non-negative")
        if self.tolerance <= 0:
            raise ConfigurationError("tolerance must be positive")
        if self.strategy not in (0, 1, 2):
            raise ConfigurationError("strategy must be 0, 1 or 2")
        if self.max_function_calls is not None and self.max_function_calls <= 0:
            raise ConfigurationError("max_function_calls must be positive")
        self.contour_levels = tuple(float(cl) for cl in self.contour_levels)
        self.contour_pairs = tuple((int(x), int(y)) for x, y in self.contour_pairs)
        for x, y in self.contour_pairs:
            if x == y or not (0 <= x < 8 and 0 <= y < 8):
                raise ConfigurationError(f"Invalid contour pair ({x},{y})")
        for cl in self.contour_levels:
            error_scale_for_cl(cl)

    @property
    def error_scales(self):
        """Error scale for each configured contour level, in order."""
        return tuple(error_scale_for_cl(cl) for cl in self.contour_levels)


# ============================================================================
# Context Managers
# ============================================================================

@contextmanager
def computation_phase(phase_name: str):
    """Context manager for logging and timing of computation phases."""
    logger.info(f"Starting {phase_name}...")
    start_time = time.time()
    try:
        yield
    except Exception as e:
        logger.error(f"Error in {phase_name}: {e}")
        raise
    finally:
        elapsed = time.time() - start_time
        logger.info(f"Completed {phase_name} in {elapsed:.2f}s")


@contextmanager
def logging_context(log_file=None, level="INFO", console_output=True):
    """
    Context manager for setting up logging configuration.

    Parameters:
    -----------
    log_file : str or Path, optional
        Path to log file. If None, no file logging.
    level : str
        Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
    console_output : bool
        Whether to also output to console

    Yields:
    -------
    logger : logging.Logger
        The baofit package logger
    """
    original_handlers = logging.root.handlers[:]
    original_level = logging.root.level

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    log_level = getattr(logging, level.upper())
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    handlers = []
    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)
    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )

    package_logger = logging.getLogger('baofit')
    original_package_level = package_logger.level
    package_logger.setLevel(log_level)

    try:
        package_logger.info(f"Logging initialized (level: {level})")
        if log_file:
            package_logger.info(f"Log file: {log_file}")
        yield package_logger
    finally:
        for handler in logging.root.handlers[:]:
            handler.close()
            logging.root.removeHandler(handler)
        logging.root.handlers = original_handlers
        logging.root.level = original_level
        package_logger.setLevel(original_package_level)


__all__ = [
    'BaoFitError',
    'ConfigurationError',
    'ContractViolation',
    'BinRangeError',
    'MalformedInputError',
    'ModelRangeError',
    'CovarianceError',
    'ONE_SIGMA_CL',
    'DEFAULT_CONTOUR_PAIRS',
    'error_scale_for_cl',
    'FitConfig',
    'computation_phase',
    'logging_context',
]
