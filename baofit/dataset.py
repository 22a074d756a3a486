"""
Binned Lyman-alpha correlation data with its covariance.

Observations live on a sparse subset of a dense (log-lambda, separation,
redshift) bin grid. Each observation is identified by a flat bin index
``(ll_bin*n_sep + sep_bin)*n_z + z_bin`` and keeps its precomputed
comoving coordinates (r3d, mu, z). The covariance is stored in packed
upper-triangular form indexed by observation order.

Lifecycle: add_data ... finalize_data, add_covariance ... finalize_covariance,
then chi_square.
"""

import logging

import numpy as np

from .core_utils import ContractViolation
from .binning import OUT_OF_RANGE
from .geometry import transform
from .packed import packed_cholesky_inverse, packed_index, packed_size, packed_symmetric_matvec

logger = logging.getLogger(__name__)

__all__ = [
    'CENTER_TOLERANCE',
    'LyaData',
]

# Input coordinates must be within this distance of their bin center
CENTER_TOLERANCE = 1e-6


class LyaData:
    """
    Sparse binned dataset with packed covariance.

    Parameters
    ----------
    log_lambda_binning : AbsBinning
        Binning of log(lam2/lam1).
    separation_binning : AbsBinning
        Binning of the angular separation in arcminutes.
    redshift_binning : AbsBinning
        Binning of the redshift.
    cosmology : object
        Provides ``line_of_sight_comoving_distance`` and
        ``transverse_comoving_scale``.
    """

    def __init__(self, log_lambda_binning, separation_binning, redshift_binning, cosmology):
        for name, value in (("log_lambda_binning", log_lambda_binning),
                            ("separation_binning", separation_binning),
                            ("redshift_binning", redshift_binning),
                            ("cosmology", cosmology)):
            if value is None:
                raise TypeError(f"{name} is required")
        self.log_lambda_binning = log_lambda_binning
        self.separation_binning = separation_binning
        self.redshift_binning = redshift_binning
        self.cosmology = cosmology

        self._n_sep = separation_binning.n_bins
        self._n_z = redshift_binning.n_bins
        self._n_bins_total = log_lambda_binning.n_bins * self._n_sep * self._n_z
        self._initialized = np.zeros(self._n_bins_total, dtype=bool)

        self._data, self._index, self._r3d, self._mu = [], [], [], []
        self._cov = None
        self._has_cov = None
        self._icov = None
        self.data_finalized = False
        self.covariance_finalized = False

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def _lookup(self, binning, value, axis):
        bin_index = binning.get_bin_index(value)
        if bin_index == OUT_OF_RANGE:
            raise ContractViolation(f"{axis} value {value} is outside its binning")
        center = binning.get_bin_center(bin_index)
        if abs(value - center) >= CENTER_TOLERANCE:
            raise ContractViolation(f"{axis} value {value} is not the center {center} of bin {bin_index}")
        return bin_index

    def add_data(self, value: float, log_lambda: float, separation: float, redshift: float) -> int:
        """
        Add an observation at a bin center.

        Returns
        -------
        int
            The flat bin index of the observation.
        """
        if self.data_finalized:
            raise ContractViolation("Cannot add data after finalize_data")
        ll_bin = self._lookup(self.log_lambda_binning, log_lambda, "log-lambda")
        sep_bin = self._lookup(self.separation_binning, separation, "separation")
        z_bin = self._lookup(self.redshift_binning, redshift, "redshift")
        index = (ll_bin * self._n_sep + sep_bin) * self._n_z + z_bin
        if self._initialized[index]:
            raise ContractViolation(f"Bin {index} (ll={log_lambda}, sep={separation}, z={redshift}) already filled")

        ds = self.separation_binning.get_bin_size(sep_bin)
        r3d, mu = self.transform(log_lambda, separation, redshift, ds)

        self._initialized[index] = True
        self._data.append(float(value))
        self._index.append(index)
        self._r3d.append(float(r3d))
        self._mu.append(float(mu))
        return index

    def transform(self, ll, sep, z, ds):
        """Comoving (r3d, mu) for bins centered on (ll, sep, z) with separation width ds."""
        return transform(ll, sep, z, ds, self.cosmology)

    def finalize_data(self):
        """Lock the observations and allocate covariance storage."""
        if self.data_finalized:
            raise ContractViolation("Data already finalized")
        self._data = np.array(self._data, dtype=float)
        self._index = np.array(self._index, dtype=int)
        self._r3d = np.array(self._r3d, dtype=float)
        self._mu = np.array(self._mu, dtype=float)
        self._redshift = np.array([self.redshift_binning.get_bin_center(int(i) % self._n_z)
                                   for i in self._index], dtype=float)
        n_cov = packed_size(self.n_data)
        self._cov = np.zeros(n_cov)
        self._has_cov = np.zeros(n_cov, dtype=bool)
        self.data_finalized = True
        logger.debug(f"Finalized {self.n_data} observations, allocated {n_cov} covariance slots")

    # ------------------------------------------------------------------
    # Covariance
    # ------------------------------------------------------------------

    def add_covariance(self, i: int, j: int, value: float):
        """Set covariance element (i,j) between observations i and j (in either order)."""
        if not self.data_finalized:
            raise ContractViolation("Cannot add covariance before finalize_data")
        if self.covariance_finalized:
            raise ContractViolation("Cannot add covariance after finalize_covariance")
        row, col = min(i, j), max(i, j)
        if row < 0 or col >= self.n_data:
            raise ContractViolation(f"Covariance indices ({i},{j}) outside [0,{self.n_data})")
        if row == col and not value > 0:
            raise ContractViolation(f"Diagonal covariance element {i} must be positive, got {value}")
        offset = packed_index(row, col)
        if self._has_cov[offset]:
            raise ContractViolation(f"Covariance element ({i},{j}) already filled")
        self._cov[offset] = value
        self._has_cov[offset] = True

    def finalize_covariance(self):
        """Lock the covariance and compute its inverse from the Cholesky factorization."""
        if not self.data_finalized:
            raise ContractViolation("Cannot finalize covariance before finalize_data")
        if self.covariance_finalized:
            raise ContractViolation("Covariance already finalized")
        self._icov = packed_cholesky_inverse(self._cov)
        self._icov.setflags(write=False)
        self._cov.setflags(write=False)
        self.covariance_finalized = True
        logger.debug(f"Inverted {self.n_data}x{self.n_data} covariance")

    def chi_square(self, delta) -> float:
        """Compute delta . C^-1 . delta for a residual vector in observation order."""
        if not self.covariance_finalized:
            raise ContractViolation("chi_square requires finalized data and covariance")
        delta = np.asarray(delta, dtype=float)
        if delta.shape != (self.n_data,):
            raise ContractViolation(f"Residual vector has shape {delta.shape}, expected ({self.n_data},)")
        return float(np.dot(delta, packed_symmetric_matvec(self._icov, delta)))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of addressable bins."""
        return self._n_bins_total

    @property
    def n_data(self) -> int:
        return len(self._data)

    @property
    def n_cov(self) -> int:
        """Number of covariance elements that have been set."""
        return 0 if self._has_cov is None else int(np.count_nonzero(self._has_cov))

    def _require_finalized(self):
        if not self.data_finalized:
            raise ContractViolation("Data must be finalized first")

    @property
    def index(self) -> np.ndarray:
        self._require_finalized()
        return self._index

    @property
    def data(self) -> np.ndarray:
        self._require_finalized()
        return self._data

    @property
    def radius(self) -> np.ndarray:
        self._require_finalized()
        return self._r3d

    @property
    def cos_angle(self) -> np.ndarray:
        self._require_finalized()
        return self._mu

    @property
    def redshift(self) -> np.ndarray:
        self._require_finalized()
        return self._redshift

    @property
    def covariance(self) -> np.ndarray:
        """Packed upper-triangular covariance."""
        self._require_finalized()
        return self._cov

    @property
    def inverse_covariance(self) -> np.ndarray:
        """Packed upper-triangular inverse covariance."""
        if not self.covariance_finalized:
            raise ContractViolation("Covariance must be finalized first")
        return self._icov

    @property
    def variance(self) -> np.ndarray:
        """Diagonal of the covariance in observation order."""
        self._require_finalized()
        k = np.arange(self.n_data)
        return self._cov[(k * (k + 3)) // 2]

    def get_variance(self, k: int) -> float:
        return float(self.variance[k])
