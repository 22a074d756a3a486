"""
Cosmology collaborators used by the fit.

This module provides the homogeneous-universe distance calculations needed
by the coordinate transform, and tabulated redshift-space correlation
functions needed by the model.

Classes
-------
LambdaCdmUniverse : Distances and growth in a Lambda-CDM cosmology
TabulatedCorrelationFunction : Cubic spline through a tabulated xi_ell(r)
RsdCorrelationFunction : Kaiser combination of xi_0, xi_2, xi_4

Functions
---------
load_correlation_function : Read a two-column (r, xi) table
load_rsd_correlation_function : Read ``<name>.<ell>.dat`` for ell = 0, 2, 4
"""

import logging
from pathlib import Path

import numpy as np
from scipy.integrate import cumulative_trapezoid, quad
from scipy.interpolate import CubicSpline

from .core_utils import ConfigurationError, MalformedInputError, ModelRangeError

logger = logging.getLogger(__name__)

__all__ = [
    'HUBBLE_DISTANCE',
    'LambdaCdmUniverse',
    'TabulatedCorrelationFunction',
    'RsdCorrelationFunction',
    'load_correlation_function',
    'load_rsd_correlation_function',
]

# c/H0 in Mpc/h
HUBBLE_DISTANCE = 2997.92458

MULTIPOLES = (0, 2, 4)


# ============================================================================
# Homogeneous cosmology
# ============================================================================

class LambdaCdmUniverse:
    """
    Homogeneous Lambda-CDM universe with optional curvature.

    Line-of-sight distances are integrated once on a fine redshift grid and
    interpolated afterwards, so they can be evaluated on large arrays.

    Parameters
    ----------
    omega_lambda : float
        Present-day dark energy density.
    omega_matter : float
        Present-day matter density. Curvature is 1 - omega_matter - omega_lambda.
    z_max : float
        Largest redshift supported by the distance table.
    n_grid : int
        Number of redshift grid points for the distance table.
    """

    def __init__(self, omega_lambda: float, omega_matter: float, z_max: float = 10.0, n_grid: int = 20001):
        if omega_matter <= 0:
            raise ConfigurationError("omega_matter must be positive")
        if z_max <= 0 or n_grid < 2:
            raise ConfigurationError("Need z_max > 0 and at least two grid points")
        self.omega_lambda = float(omega_lambda)
        self.omega_matter = float(omega_matter)
        self.curvature = 1.0 - self.omega_matter - self.omega_lambda
        self.z_max = float(z_max)

        z_grid = np.linspace(0.0, self.z_max, n_grid)
        comoving = HUBBLE_DISTANCE * cumulative_trapezoid(1.0 / self.hubble_ratio(z_grid), z_grid, initial=0.0)
        self._distance_spline = CubicSpline(z_grid, comoving)
        logger.debug(f"Tabulated comoving distance on {n_grid} points up to z = {self.z_max}")

    def hubble_ratio(self, z):
        """H(z)/H0."""
        zp1 = 1 + np.asarray(z, dtype=float)
        return np.sqrt(self.omega_matter * zp1**3 + self.curvature * zp1**2 + self.omega_lambda)

    def _check_redshift(self, z):
        z = np.asarray(z, dtype=float)
        if np.any(z < 0) or np.any(z > self.z_max):
            raise ModelRangeError(f"Redshift outside tabulated range [0,{self.z_max}]")
        return z

    def line_of_sight_comoving_distance(self, z):
        """Comoving distance along the line of sight in Mpc/h."""
        z = self._check_redshift(z)
        return self._distance_spline(z)

    def transverse_comoving_scale(self, z):
        """Comoving transverse distance per radian in Mpc/h/rad."""
        distance = self.line_of_sight_comoving_distance(z)
        if self.curvature > 0:
            root = np.sqrt(self.curvature)
            return HUBBLE_DISTANCE / root * np.sinh(root * distance / HUBBLE_DISTANCE)
        if self.curvature < 0:
            root = np.sqrt(-self.curvature)
            return HUBBLE_DISTANCE / root * np.sin(root * distance / HUBBLE_DISTANCE)
        return distance

    def _growth(self, z):
        integral, _ = quad(lambda zz: (1 + zz) / self.hubble_ratio(zz) ** 3, z, np.inf)
        return float(self.hubble_ratio(z)) * integral

    def growth_function(self, z):
        """
        Unnormalized linear growth function E(z) * Integral[(1+z')/E(z')^3, {z', z, inf}].

        Multiply by 2.5*omega_matter to obtain D(z) normalized to the
        matter-dominated solution.
        """
        z = np.asarray(z, dtype=float)
        if z.ndim == 0:
            return self._growth(float(z))
        return np.array([self._growth(float(zz)) for zz in z.ravel()]).reshape(z.shape)


# ============================================================================
# Tabulated correlation functions
# ============================================================================

class TabulatedCorrelationFunction:
    """
    Natural cubic spline through a tabulated correlation function.

    Evaluation outside of the tabulated range raises a ModelRangeError.
    """

    def __init__(self, r, xi):
        r = np.asarray(r, dtype=float)
        xi = np.asarray(xi, dtype=float)
        if r.ndim != 1 or r.shape != xi.shape or r.size < 3:
            raise ConfigurationError("Need matching 1D arrays with at least 3 points")
        if np.any(np.diff(r) <= 0):
            raise ConfigurationError("Tabulated r values must be strictly increasing")
        self.r_min = float(r[0])
        self.r_max = float(r[-1])
        self._spline = CubicSpline(r, xi, bc_type='natural')

    def __call__(self, r):
        r = np.asarray(r, dtype=float)
        if np.any(r < self.r_min) or np.any(r > self.r_max):
            raise ModelRangeError(
                f"Correlation function evaluated outside its tabulated range [{self.r_min},{self.r_max}]"
            )
        return self._spline(r)


class RsdCorrelationFunction:
    """
    Redshift-space correlation function built from its multipoles.

    xi(r,mu) = C0 xi_0(r) + C2 P2(mu) xi_2(r) + C4 P4(mu) xi_4(r) with the
    linear (Kaiser) coefficients for redshift-space distortion parameter beta.
    Any callables of r can be used for the multipoles.
    """

    def __init__(self, xi0, xi2, xi4):
        self.xi0 = xi0
        self.xi2 = xi2
        self.xi4 = xi4

    @staticmethod
    def coefficients(beta):
        c0 = 1 + beta * (2.0 / 3 + beta / 5.0)
        c2 = beta * (4.0 / 3 + 4.0 * beta / 7)
        c4 = 8.0 * beta * beta / 35
        return c0, c2, c4

    def __call__(self, r, mu, beta):
        c0, c2, c4 = self.coefficients(beta)
        mu = np.asarray(mu, dtype=float)
        musq = mu * mu
        p2 = 0.5 * (3 * musq - 1)
        p4 = (35 * musq * musq - 30 * musq + 3) / 8
        return c0 * self.xi0(r) + c2 * p2 * self.xi2(r) + c4 * p4 * self.xi4(r)


def load_correlation_function(path) -> TabulatedCorrelationFunction:
    """Read a whitespace-delimited two-column (r, xi) table."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Correlation function table not found: {path}")
    try:
        table = np.loadtxt(path, ndmin=2)
    except ValueError as e:
        raise MalformedInputError(f"Unable to parse correlation function table {path}: {e}") from e
    if table.shape[1] != 2:
        raise MalformedInputError(f"Expected 2 columns in {path}, found {table.shape[1]}")
    logger.debug(f"Loaded {table.shape[0]} rows from {path}")
    return TabulatedCorrelationFunction(table[:, 0], table[:, 1])


def load_rsd_correlation_function(name) -> RsdCorrelationFunction:
    """Read the multipoles stored in ``<name>.0.dat``, ``<name>.2.dat`` and ``<name>.4.dat``."""
    multipoles = [load_correlation_function(f"{name}.{ell}.dat") for ell in MULTIPOLES]
    logger.info(f"Loaded correlation function multipoles {MULTIPOLES} for {name}")
    return RsdCorrelationFunction(*multipoles)
