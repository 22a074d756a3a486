"""
Minimization of the BAO likelihood with iminuit.

MinuitFitter wraps iminuit.Minuit around a LyaBaoLikelihood: MIGRAD for the
best fit, optional MINOS errors, and MnContours for 2-parameter confidence
boundaries. Contours at several confidence levels are traced by rescaling
the likelihood error budget and refitting, so each boundary is a unit
-log(L) contour of the rescaled objective.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from iminuit import Minuit
from scipy.stats import chi2

from .core_utils import ConfigurationError, computation_phase, error_scale_for_cl

logger = logging.getLogger(__name__)

__all__ = [
    'FitResult',
    'MinuitFitter',
    'global_correlation',
]

# Passing this confidence level to mncontour leaves errordef unscaled
UNIT_CONTOUR_CL = float(chi2(2).cdf(1.0))


@dataclass
class FitResult:
    """Best-fit state returned by MinuitFitter.migrad."""
    names: List[str]
    values: np.ndarray
    errors: np.ndarray
    covariance: np.ndarray
    global_cc: np.ndarray
    fixed: np.ndarray
    fval: float
    edm: float
    valid: bool
    nfcn: int
    minos: Dict[str, Tuple[float, float]] = field(default_factory=dict)

    def summary(self) -> str:
        lines = [f"fval = {self.fval:.6g}, edm = {self.edm:.3g}, nfcn = {self.nfcn}, valid = {self.valid}"]
        for name, value, error, fixed, gcc in zip(self.names, self.values, self.errors, self.fixed, self.global_cc):
            status = "fixed" if fixed else f"+/- {error:.6g} (global cc {gcc:.3f})"
            lines.append(f"  {name:>10s} = {value:.6g} {status}")
        return "\n".join(lines)


def global_correlation(covariance, free) -> np.ndarray:
    """
    Global correlation coefficients sqrt(1 - 1/(C_ii (C^-1)_ii)) of free parameters.

    Fixed parameters get zero.
    """
    covariance = np.asarray(covariance, dtype=float)
    free = np.asarray(free, dtype=bool)
    gcc = np.zeros(covariance.shape[0])
    if not np.any(free):
        return gcc
    sub = covariance[np.ix_(free, free)]
    inverse = np.linalg.inv(sub)
    product = np.diag(sub) * np.diag(inverse)
    gcc[free] = np.sqrt(np.clip(1.0 - 1.0 / product, 0.0, 1.0))
    return gcc


class MinuitFitter:
    """
    Drive iminuit on a likelihood exposing ``initial_state()`` and ``set_error_scale()``.

    Parameters
    ----------
    likelihood : LyaBaoLikelihood
        Objective, called with the full parameter vector (fixed values included).
    max_function_calls : int, optional
        Call limit per minimization, default 100 * n_par^2.
    tolerance : float
        EDM tolerance passed to Minuit.
    strategy : int
        Minuit strategy (0 low, 1 medium, 2 high).
    """

    def __init__(self, likelihood, max_function_calls: Optional[int] = None,
                 tolerance: float = 0.1, strategy: int = 1):
        self.likelihood = likelihood
        state = likelihood.initial_state()
        self.names = [s.name for s in state]
        n_par = len(state)
        self.max_function_calls = max_function_calls or 100 * n_par * n_par

        self.minuit = Minuit(likelihood, np.array([s.value for s in state]), name=self.names)
        self.minuit.errordef = Minuit.LIKELIHOOD
        self.minuit.strategy = strategy
        self.minuit.tol = tolerance
        for s in state:
            if s.floating:
                self.minuit.errors[s.name] = s.error
            else:
                self.minuit.fixed[s.name] = True
        logger.info("Initial parameter state:\n" + "\n".join(
            f"  {s.name:>10s} = {s.value:g} " + (f"step {s.error:g}" if s.floating else "fixed") for s in state))

    @property
    def fixed(self) -> np.ndarray:
        return np.array([bool(self.minuit.fixed[name]) for name in self.names])

    def migrad(self, reset: bool = False) -> FitResult:
        """Minimize from the current state, or from the initial state if reset."""
        if reset:
            self.minuit.reset()
        with computation_phase(f"MIGRAD (error scale {self.likelihood.error_scale:g})"):
            self.minuit.migrad(ncall=self.max_function_calls)
        result = self.result()
        if not result.valid:
            logger.warning("MIGRAD did not converge to a valid minimum")
        logger.info("Fit result:\n" + result.summary())
        return result

    def minos(self) -> Dict[str, Tuple[float, float]]:
        """Run MINOS on every floating parameter and return (lower, upper) errors."""
        errors = {}
        with computation_phase("MINOS"):
            self.minuit.minos(ncall=self.max_function_calls)
            for name in self.names:
                if self.minuit.fixed[name]:
                    continue
                merror = self.minuit.merrors[name]
                errors[name] = (float(merror.lower), float(merror.upper))
                logger.info(f"MINOS error[{name}] = +{merror.upper:g} {merror.lower:g}")
        return errors

    def result(self) -> FitResult:
        """Snapshot of the current Minuit state."""
        fixed = self.fixed
        covariance = self.minuit.covariance
        covariance = np.zeros((len(self.names), len(self.names))) if covariance is None else np.array(covariance)
        fmin = self.minuit.fmin
        return FitResult(
            names=list(self.names),
            values=np.array(self.minuit.values),
            errors=np.array(self.minuit.errors),
            covariance=covariance,
            global_cc=global_correlation(covariance, ~fixed) if np.any(covariance) else np.zeros(len(self.names)),
            fixed=fixed,
            fval=float(fmin.fval),
            edm=float(fmin.edm),
            valid=bool(fmin.is_valid),
            nfcn=int(self.minuit.nfcn),
        )

    def contour(self, x: int, y: int, n_points: int) -> np.ndarray:
        """
        Boundary of the unit contour of the current objective in parameters (x, y).

        A pair involving a fixed parameter has no contour; the best-fit
        point is repeated n_points times instead.
        """
        if self.minuit.fixed[x] or self.minuit.fixed[y]:
            logger.warning(f"Contour ({self.names[x]},{self.names[y]}) involves a fixed parameter, "
                           "writing a degenerate boundary")
            point = (self.minuit.values[x], self.minuit.values[y])
            return np.tile(np.array(point, dtype=float), (n_points, 1))
        points = self.minuit.mncontour(self.names[x], self.names[y], cl=UNIT_CONTOUR_CL, size=n_points)
        points = np.asarray(points, dtype=float)
        # iminuit closes the boundary by repeating its first point
        if len(points) == n_points + 1 and np.array_equal(points[0], points[-1]):
            points = points[:-1]
        if len(points) != n_points:
            logger.warning(f"Contour ({self.names[x]},{self.names[y]}) returned {len(points)} "
                           f"of {n_points} points")
        return points

    def contours(self, levels: Sequence[float], pairs: Sequence[Tuple[int, int]],
                 n_points: int) -> List[np.ndarray]:
        """
        Trace boundaries for every confidence level and parameter pair.

        For each level in order, the likelihood error scale is set to the
        2-dof chi-square quantile, the fit is redone from the initial state
        and each pair is traced in order. The error scale is restored to 1
        and the best fit redone afterwards.

        Returns
        -------
        list of np.ndarray
            ``len(levels) * len(pairs)`` arrays of shape (n_points, 2).
        """
        if n_points <= 0:
            raise ConfigurationError("n_points must be positive")
        contour_data = []
        try:
            for cl in levels:
                scale = error_scale_for_cl(cl)
                self.likelihood.set_error_scale(scale)
                self.migrad(reset=True)
                with computation_phase(f"{100 * cl:g}% CL contours with {n_points} points"):
                    for x, y in pairs:
                        contour_data.append(self.contour(x, y, n_points))
        finally:
            self.likelihood.set_error_scale(1.0)
        self.migrad(reset=True)
        return contour_data
