"""
Likelihood of the BAO model given binned Lyman-alpha data.

This module provides the LyaBaoLikelihood class, which restricts a
finalized LyaData set to a window in comoving separation, compares it with
a LyaBaoModel and returns a -log(likelihood) style objective for a
minimizer. It also writes the fit products consumed by plotting tools.

Classes:
--------
Parameter : Named model parameter with a floating/fixed flag
ParameterState : Initial minimizer state of one parameter
LyaBaoLikelihood : Objective function and fit result serialization

Result file layout (whitespace delimited, one record per line):
    three binning lines ``n e0 ... en`` for log-lambda, separation, redshift
    ``n_data model_bins n_contour``
    ``n_par p0 ... p7``
    n_data lines ``index value pull``
    n_z * model_bins * model_bins lines ``r3d prediction``
    optional contour lines ``x y``, n_contour per boundary
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .binning import UniformBinning
from .core_utils import ConfigurationError, ContractViolation
from .model import PARAMETER_NAMES

logger = logging.getLogger(__name__)

__all__ = [
    'Parameter',
    'ParameterState',
    'DEFAULT_PARAMETER_VALUES',
    'LyaBaoLikelihood',
]

DEFAULT_PARAMETER_VALUES = {
    'alpha': 3.8,
    'bias': 0.17,
    'beta': 1.0,
    'bao_ampl': 1.0,
    'bao_scale': 1.0,
    'bb_a1': 0.0,
    'bb_a2': 0.0,
    'bb_a3': 0.0,
}


class Parameter:
    """A named model parameter that is either floating or fixed."""

    def __init__(self, name: str, value: float, floating: bool = False):
        self.name = name
        self.value = float(value)
        self.floating = bool(floating)

    def fix(self, value: Optional[float] = None):
        if value is not None:
            self.value = float(value)
        self.floating = False

    def release(self):
        self.floating = True

    def __repr__(self):
        state = "floating" if self.floating else "fixed"
        return f"Parameter({self.name!r}, {self.value}, {state})"


@dataclass(frozen=True)
class ParameterState:
    """Starting value and step of one parameter for the minimizer."""
    name: str
    value: float
    error: float
    floating: bool


def _format(value):
    return repr(float(value))


class LyaBaoLikelihood:
    """
    Chi-square objective of a BAO model fitted to binned Lyman-alpha data.

    Parameters:
    -----------
    data : LyaData
        Dataset with finalized data and covariance.
    model : LyaBaoModel
        Model evaluated at each observation's (r3d, mu, z).
    rmin, rmax : float
        Window of comoving separations (Mpc/h) included in the fit.
    fix_bao : bool
        Fix the BAO amplitude and scale at their starting values.
    no_bband : bool
        Fix the broadband coefficient a1 (a2 and a3 are always fixed).
    initial_values : dict, optional
        Starting values overriding DEFAULT_PARAMETER_VALUES.

    Examples:
    ---------
    >>> nll = LyaBaoLikelihood(data, model, rmin=20, rmax=200)
    >>> nll.set_error_scale(error_scale_for_cl(0.68))
    >>> value = nll(nll.parameter_values)
    """

    def __init__(self, data, model, rmin: float, rmax: float,
                 fix_bao: bool = False, no_bband: bool = False, initial_values=None):
        if data is None or model is None:
            raise TypeError("data and model are required")
        if not rmax > rmin:
            raise ConfigurationError(f"rmax ({rmax}) must be larger than rmin ({rmin})")
        if not data.covariance_finalized:
            raise ContractViolation("Likelihood requires finalized data and covariance")
        self.data = data
        self.model = model
        self.rmin = float(rmin)
        self.rmax = float(rmax)
        self._error_scale = 1.0

        values = dict(DEFAULT_PARAMETER_VALUES)
        for name, value in (initial_values or {}).items():
            if name not in values:
                raise ConfigurationError(f"Unknown parameter {name!r}")
            values[name] = value
        floating = {
            'alpha': True,
            'bias': True,
            'beta': True,
            'bao_ampl': not fix_bao,
            'bao_scale': not fix_bao,
            'bb_a1': not no_bband,
            'bb_a2': False,
            'bb_a3': False,
        }
        self.parameters = [Parameter(name, values[name], floating[name]) for name in PARAMETER_NAMES]

        r = data.radius
        self._in_window = (r >= self.rmin) & (r <= self.rmax)
        logger.info(f"Fit window [{self.rmin},{self.rmax}] Mpc/h includes "
                    f"{int(np.count_nonzero(self._in_window))} of {data.n_data} observations")

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    @property
    def n_parameters(self) -> int:
        return len(self.parameters)

    @property
    def parameter_names(self) -> List[str]:
        return [p.name for p in self.parameters]

    @property
    def parameter_values(self) -> np.ndarray:
        return np.array([p.value for p in self.parameters])

    def get_parameter(self, name: str) -> Parameter:
        for param in self.parameters:
            if param.name == name:
                return param
        raise KeyError(f"Unknown parameter {name!r}")

    def initial_state(self) -> List[ParameterState]:
        """
        Initial minimizer state.

        Floating parameters start with a step of 10% of their value (0.1 if
        the value is zero). Fixed parameters get a zero step.
        """
        state = []
        for param in self.parameters:
            if param.floating:
                error = 0.1 if param.value == 0 else 0.1 * abs(param.value)
            else:
                error = 0.0
            state.append(ParameterState(param.name, param.value, error, param.floating))
        return state

    # ------------------------------------------------------------------
    # Objective
    # ------------------------------------------------------------------

    @property
    def error_scale(self) -> float:
        return self._error_scale

    def set_error_scale(self, scale: float):
        """Divide the objective by scale so a unit-errordef contour traces chi2 = min + scale."""
        if not scale > 0:
            raise ConfigurationError(f"Error scale must be positive, got {scale}")
        self._error_scale = float(scale)

    @property
    def in_window(self) -> np.ndarray:
        """Mask of observations with rmin <= r3d <= rmax."""
        return self._in_window

    def predict(self, params) -> np.ndarray:
        """Model prediction for every observation in the fit window (NaN outside)."""
        params = self._check_params(params)
        mask = self._in_window
        pred = np.full(self.data.n_data, np.nan)
        pred[mask] = self.model.evaluate(self.data.radius[mask], self.data.cos_angle[mask],
                                         self.data.redshift[mask], params)
        return pred

    def residuals(self, params) -> np.ndarray:
        """Observed minus predicted, zero outside the fit window."""
        delta = np.zeros(self.data.n_data)
        mask = self._in_window
        delta[mask] = self.data.data[mask] - self.predict(params)[mask]
        return delta

    def chi_square(self, params) -> float:
        return self.data.chi_square(self.residuals(params))

    def __call__(self, params) -> float:
        # Minuit uses errordef 0.5 for a -log(L), so halve the chi-square. The
        # error scale moves the unit contour to other confidence levels.
        return 0.5 * self.chi_square(params) / self._error_scale

    def _check_params(self, params):
        params = np.asarray(params, dtype=float)
        if params.shape != (self.n_parameters,):
            raise ContractViolation(f"Expected {self.n_parameters} parameter values, got shape {params.shape}")
        return params

    # ------------------------------------------------------------------
    # Fit products
    # ------------------------------------------------------------------

    def pulls(self, params) -> np.ndarray:
        """Residuals in units of the diagonal errors, zero outside the fit window."""
        return self.residuals(params) / np.sqrt(self.data.variance)

    def model_binnings(self, model_bins: int):
        """Uniform (separation, log-lambda) binnings spanning the data binnings."""
        if model_bins < 2:
            raise ConfigurationError("model_bins must be at least 2")
        sep_bins = self.data.separation_binning
        ll_bins = self.data.log_lambda_binning
        sep_min, sep_max = sep_bins.get_bin_low_edge(0), sep_bins.get_bin_low_edge(sep_bins.n_bins)
        ll_min, ll_max = ll_bins.get_bin_low_edge(0), ll_bins.get_bin_low_edge(ll_bins.n_bins)
        return (UniformBinning(model_bins, sep_min, (sep_max - sep_min) / (model_bins - 1.0)),
                UniformBinning(model_bins, ll_min, (ll_max - ll_min) / (model_bins - 1.0)))

    def model_grid(self, params, model_bins: int):
        """
        Model predictions on a dense uniform grid for every redshift bin.

        Returns
        -------
        r3d, prediction : np.ndarray
            Arrays of shape (n_z, model_bins, model_bins) indexed by
            (redshift bin, separation bin, log-lambda bin).
        """
        params = self._check_params(params)
        sep_model, ll_model = self.model_binnings(model_bins)
        sep = sep_model.centers
        ds = sep_model.get_bin_size(0)
        ll = ll_model.centers
        sep_grid, ll_grid = np.meshgrid(sep, ll, indexing='ij')
        z_bins = self.data.redshift_binning
        r3d = np.empty((z_bins.n_bins, model_bins, model_bins))
        prediction = np.empty_like(r3d)
        for iz, z in enumerate(z_bins.centers):
            r, mu = self.data.transform(ll_grid, sep_grid, z, ds)
            r3d[iz] = r
            prediction[iz] = self.model.evaluate(r, mu, z, params)
        return r3d, prediction

    def dump(self, filename, params, contour_data: Optional[Sequence] = None, model_bins: int = 200,
             n_contour: Optional[int] = None):
        """
        Write the fit products to a text file.

        Parameters:
        -----------
        filename : str or Path
            Output file.
        params : sequence of float
            Best-fit parameter values.
        contour_data : sequence of (n_points, 2) arrays, optional
            Boundary points, one array per (confidence level, parameter pair).
        model_bins : int
            Resolution of the dense model grid along each axis.
        n_contour : int, optional
            Points per boundary written to the header. Defaults to the length
            of the first boundary. Every boundary must have exactly this many
            points, otherwise nothing is written.
        """
        params = self._check_params(params)
        contour_data = list(contour_data or [])
        if n_contour is None:
            n_contour = len(contour_data[0]) if contour_data else 0
        if contour_data and n_contour <= 0:
            raise ContractViolation(f"Cannot dump {len(contour_data)} contours with {n_contour} points each")
        for points in contour_data:
            if len(points) != n_contour:
                raise ContractViolation(f"Contour with {len(points)} points differs from header count {n_contour}")
        pulls = self.pulls(params)
        r3d, prediction = self.model_grid(params, model_bins)

        with open(filename, 'w') as out:
            self.data.log_lambda_binning.dump(out)
            self.data.separation_binning.dump(out)
            self.data.redshift_binning.dump(out)
            out.write(f"{self.data.n_data} {model_bins} {n_contour}\n")
            out.write(" ".join([str(self.n_parameters)] + [_format(p) for p in params]) + "\n")
            for index, value, pull in zip(self.data.index, self.data.data, pulls):
                out.write(f"{int(index)} {_format(value)} {_format(pull)}\n")
            for r, pred in zip(r3d.ravel(), prediction.ravel()):
                out.write(f"{_format(r)} {_format(pred)}\n")
            for points in contour_data:
                for x, y in points:
                    out.write(f"{_format(x)} {_format(y)}\n")
        logger.info(f"Dumped fit results for {self.data.n_data} observations to {filename}")
