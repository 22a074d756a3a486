"""
Transform from observed bin coordinates to comoving separations.

A bin is labelled by the log-wavelength ratio ``ll = log(lam2/lam1)`` of
the two absorbers, their angular separation ``sep`` in arcminutes and the
bin redshift ``z``. The transform returns the 3D comoving separation
``r3d`` in Mpc/h and ``mu``, the cosine of the angle between the
separation vector and the line of sight.

All functions accept scalars or numpy arrays.
"""

import numpy as np

__all__ = [
    'ARCMIN_TO_RAD',
    'absorber_redshifts',
    'weighted_separation',
    'transform',
]

ARCMIN_TO_RAD = np.pi / (60.0 * 180.0)


def absorber_redshifts(ll, z):
    """Redshifts (z1, z2) of two absorbers with log(lam2/lam1) = ll around z."""
    ratio = np.exp(0.5 * np.asarray(ll, dtype=float))
    zp1 = np.asarray(z, dtype=float) + 1
    return zp1 / ratio - 1, zp1 * ratio - 1


def weighted_separation(sep, ds):
    """
    Mean separation over a bin of width ds centered on sep, weighted by arc length.

    Integral[s^2, {s,smin,smax}] / Integral[s, {s,smin,smax}] = s + ds^2/(12 s)
    """
    sep = np.asarray(sep, dtype=float)
    return sep + (np.asarray(ds, dtype=float) ** 2 / 12) / sep


def transform(ll, sep, z, ds, cosmology):
    """
    Compute (r3d, mu) for bins with the given centers and separation width.

    Parameters
    ----------
    ll : float or array_like
        Log-wavelength ratio of the bin center.
    sep : float or array_like
        Angular separation of the bin center in arcminutes.
    z : float or array_like
        Redshift of the bin center.
    ds : float or array_like
        Angular width of the separation bin in arcminutes.
    cosmology : object
        Provides ``line_of_sight_comoving_distance(z)`` and
        ``transverse_comoving_scale(z)`` in Mpc/h and Mpc/h/rad.

    Returns
    -------
    r3d, mu : float or np.ndarray
    """
    z1, z2 = absorber_redshifts(ll, z)
    dr_los = (cosmology.line_of_sight_comoving_distance(z2)
              - cosmology.line_of_sight_comoving_distance(z1))
    dr_perp = cosmology.transverse_comoving_scale(z) * (weighted_separation(sep, ds) * ARCMIN_TO_RAD)
    r3d = np.sqrt(dr_los * dr_los + dr_perp * dr_perp)
    mu = np.abs(dr_los) / r3d
    return r3d, mu
