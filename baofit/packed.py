"""
Packed storage for symmetric matrices.

The upper triangle of an n x n symmetric matrix is stored column by column
in a flat array of n*(n+1)/2 values, so that element (row, col) with
row <= col lives at ``row + col*(col+1)/2``. This is the LAPACK 'U' packed
convention (http://www.netlib.org/lapack/lug/node123.html).
"""

import logging
from functools import lru_cache

import numpy as np
from scipy.linalg import lapack

from .core_utils import CovarianceError

logger = logging.getLogger(__name__)

__all__ = [
    'packed_size',
    'packed_index',
    'unpack_symmetric',
    'pack_upper',
    'packed_symmetric_matvec',
    'packed_cholesky_inverse',
]


def packed_size(n: int) -> int:
    return (n * (n + 1)) // 2


def packed_index(i: int, j: int) -> int:
    """Offset of element (i,j) or (j,i) in packed upper-triangular storage."""
    row, col = (j, i) if i >= j else (i, j)
    return row + (col * (col + 1)) // 2


@lru_cache(maxsize=8)
def _packed_indices(n):
    # tril_indices walks (i, j<=i) row by row, which is the packed column order for col=i, row=j
    cols, rows = np.tril_indices(n)
    offdiag = rows != cols
    for array in (rows, cols, offdiag):
        array.setflags(write=False)
    return rows, cols, offdiag


def _size_from_packed(ap):
    n = int((np.sqrt(8 * ap.size + 1) - 1) // 2)
    if packed_size(n) != ap.size:
        raise ValueError(f"Packed array of length {ap.size} is not triangular")
    return n


def unpack_symmetric(ap) -> np.ndarray:
    """Expand packed storage into a dense symmetric matrix."""
    ap = np.asarray(ap, dtype=float)
    n = _size_from_packed(ap)
    rows, cols, _ = _packed_indices(n)
    dense = np.zeros((n, n))
    dense[rows, cols] = ap
    dense[cols, rows] = ap
    return dense


def pack_upper(a) -> np.ndarray:
    """Pack the upper triangle of a square matrix."""
    a = np.asarray(a, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {a.shape}")
    rows, cols, _ = _packed_indices(a.shape[0])
    return a[rows, cols].copy()


def packed_symmetric_matvec(ap, x) -> np.ndarray:
    """
    Product of a packed symmetric matrix with a vector.

    Neither input is modified, and no state is kept between calls.

    Parameters
    ----------
    ap : array_like
        Packed upper triangle, length n*(n+1)/2.
    x : array_like
        Vector of length n.

    Returns
    -------
    np.ndarray
        The product A @ x.
    """
    ap = np.asarray(ap, dtype=float)
    x = np.asarray(x, dtype=float)
    n = x.size
    if ap.size != packed_size(n):
        raise ValueError(f"Packed matrix of length {ap.size} does not match vector of length {n}")
    rows, cols, offdiag = _packed_indices(n)
    upper = np.bincount(rows, weights=ap * x[cols], minlength=n)
    lower = np.bincount(cols[offdiag], weights=ap[offdiag] * x[rows[offdiag]], minlength=n)
    return upper + lower


def packed_cholesky_inverse(ap) -> np.ndarray:
    """
    Invert a packed positive-definite matrix via its Cholesky factorization.

    Parameters
    ----------
    ap : array_like
        Packed upper triangle of a symmetric positive-definite matrix.

    Returns
    -------
    np.ndarray
        Packed upper triangle of the inverse.

    Raises
    ------
    CovarianceError
        If the factorization or inversion reports a non-zero LAPACK status.
    """
    dense = unpack_symmetric(ap)
    factor, info = lapack.dpotrf(dense, lower=0, clean=1)
    if info != 0:
        raise CovarianceError("cholesky", info)
    inverse, info = lapack.dpotri(factor, lower=0)
    if info != 0:
        raise CovarianceError("inverse", info)
    # dpotri only fills the upper triangle, which is all we pack
    return pack_upper(inverse)
