"""
Parametric model of the Lyman-alpha 3D correlation function.

The prediction blends a fiducial correlation function with its
no-oscillation counterpart to float the BAO amplitude and scale, applies
the tracer bias and a power-law redshift evolution, and adds a broadband
nuisance term:

    xi(r,mu,z) = bias^2 ((1+z)/(1+zref))^alpha [ampl (fid - nw) + nw](r*scale, mu)
                 + 1e-1 a1/r^2 + 1e-3 a2/r + 1e-5 a3
"""

import logging

import numpy as np

from .cosmology import load_rsd_correlation_function

logger = logging.getLogger(__name__)

__all__ = [
    'PARAMETER_NAMES',
    'BROADBAND_NORMALIZATION',
    'LyaBaoModel',
]

PARAMETER_NAMES = (
    'alpha',
    'bias',
    'beta',
    'bao_ampl',
    'bao_scale',
    'bb_a1',
    'bb_a2',
    'bb_a3',
)

# Keeps the fitted broadband coefficients of order one
BROADBAND_NORMALIZATION = (1e-1, 1e-3, 1e-5)


class LyaBaoModel:
    """
    BAO model built from fiducial and no-wiggles correlation functions.

    Parameters
    ----------
    fiducial : callable
        ``fiducial(r, mu, beta)`` returning the redshift-space correlation
        function with the acoustic feature.
    nowiggles : callable
        Same signature, without the acoustic feature.
    zref : float
        Reference redshift of the evolution factor.
    """

    def __init__(self, fiducial, nowiggles, zref: float):
        self.fiducial = fiducial
        self.nowiggles = nowiggles
        self.zref = float(zref)

    @classmethod
    def from_files(cls, fiducial_name, nowiggles_name, zref):
        """Build a model from ``<name>.<ell>.dat`` tables with ell = 0, 2, 4."""
        return cls(load_rsd_correlation_function(fiducial_name),
                   load_rsd_correlation_function(nowiggles_name), zref)

    @property
    def n_parameters(self) -> int:
        return len(PARAMETER_NAMES)

    def broadband(self, r, a1, a2, a3):
        n1, n2, n3 = BROADBAND_NORMALIZATION
        r = np.asarray(r, dtype=float)
        return n1 * a1 / (r * r) + n2 * a2 / r + n3 * a3

    def evaluate(self, r, mu, z, params):
        """
        Predict the correlation function.

        Parameters
        ----------
        r : float or array_like
            Comoving separation in Mpc/h.
        mu : float or array_like
            Cosine of the angle to the line of sight.
        z : float or array_like
            Redshift.
        params : sequence of float
            Values in the order of PARAMETER_NAMES.
        """
        alpha, bias, beta, ampl, scale, a1, a2, a3 = params
        r = np.asarray(r, dtype=float)
        zfactor = ((1 + np.asarray(z, dtype=float)) / (1 + self.zref)) ** alpha
        # mu is unchanged by an isotropic rescaling of r
        fid = self.fiducial(r * scale, mu, beta)
        nw = self.nowiggles(r * scale, mu, beta)
        xi = ampl * (fid - nw) + nw
        return bias * bias * zfactor * xi + self.broadband(r, a1, a2, a3)
