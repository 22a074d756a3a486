"""
Binning of a continuous coordinate into discrete bins.

Classes
-------
AbsBinning : Common interface and default bin centers
UniformBinning : Equal-width bins
VariableBinning : Bins given by an explicit list of edges
TwoStepBinning : A near-zero bin, uniform bins up to a breakpoint, then logarithmic bins

Examples
--------
>>> sep_bins = UniformBinning(14, 0.0, 10.0)
>>> sep_bins.get_bin_index(25.0)
2
>>> ll_bins = TwoStepBinning(14, 0.0002, 0.004, 0.001)
>>> ll_bins.get_bin_center(0)
0.0
"""

import logging
import math

import numpy as np

from .core_utils import BinRangeError, ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    'OUT_OF_RANGE',
    'AbsBinning',
    'UniformBinning',
    'VariableBinning',
    'TwoStepBinning',
]

# Returned by VariableBinning.get_bin_index for underflow and overflow
OUT_OF_RANGE = -1


class AbsBinning:
    """
    Interface shared by all binnings.

    Subclasses provide ``n_bins``, ``get_bin_index``, ``get_bin_size`` and
    ``get_bin_low_edge``. The bin center defaults to the midpoint.
    """

    @property
    def n_bins(self) -> int:
        raise NotImplementedError

    def get_bin_index(self, value: float) -> int:
        raise NotImplementedError

    def get_bin_size(self, index: int) -> float:
        raise NotImplementedError

    def get_bin_low_edge(self, index: int) -> float:
        """Lower edge of a bin. Use index = n_bins for the upper edge of the last bin."""
        raise NotImplementedError

    def get_bin_center(self, index: int) -> float:
        return self.get_bin_low_edge(index) + 0.5 * self.get_bin_size(index)

    @property
    def edges(self) -> np.ndarray:
        return np.array([self.get_bin_low_edge(i) for i in range(self.n_bins + 1)])

    @property
    def centers(self) -> np.ndarray:
        return np.array([self.get_bin_center(i) for i in range(self.n_bins)])

    def _check_index(self, index, upper):
        if not 0 <= index <= upper:
            raise BinRangeError(f"Bin index {index} outside [0,{upper}]")

    def dump(self, stream):
        """Write this binning as ``n e0 e1 ... en`` on a single line."""
        fields = [str(self.n_bins)] + [repr(float(edge)) for edge in self.edges]
        stream.write(" ".join(fields) + "\n")

    def __repr__(self):
        return f"{type(self).__name__}(n_bins={self.n_bins})"


class UniformBinning(AbsBinning):
    """
    Equal-width bins.

    Parameters
    ----------
    n_bins : int
        Number of bins, must be positive.
    low_edge : float
        Lower edge of the first bin.
    bin_size : float
        Width of every bin, must be positive.
    """

    def __init__(self, n_bins: int, low_edge: float, bin_size: float):
        if n_bins <= 0:
            raise ConfigurationError(f"n_bins must be positive, got {n_bins}")
        if not bin_size > 0:
            raise ConfigurationError(f"bin_size must be positive, got {bin_size}")
        self._n_bins = int(n_bins)
        self._low_edge = float(low_edge)
        self._bin_size = float(bin_size)

    @property
    def n_bins(self):
        return self._n_bins

    def get_bin_index(self, value):
        index = math.floor((value - self._low_edge) / self._bin_size)
        if not 0 <= index < self._n_bins:
            raise BinRangeError(
                f"Value {value} outside uniform binning [{self._low_edge},{self.get_bin_low_edge(self._n_bins)})"
            )
        return index

    def get_bin_size(self, index):
        self._check_index(index, self._n_bins - 1)
        return self._bin_size

    def get_bin_low_edge(self, index):
        self._check_index(index, self._n_bins)
        return self._low_edge + index * self._bin_size


class VariableBinning(AbsBinning):
    """
    Bins defined by an explicit, strictly increasing list of edges.

    Values outside the edges map to ``OUT_OF_RANGE`` instead of raising.
    """

    def __init__(self, bin_edges):
        edges = np.asarray(bin_edges, dtype=float)
        if edges.ndim != 1 or edges.size < 2:
            raise ConfigurationError("Need at least two bin edges")
        if np.any(np.diff(edges) <= 0):
            raise ConfigurationError("Bin edges must be strictly increasing")
        self._bin_edges = edges

    @property
    def n_bins(self):
        return self._bin_edges.size - 1

    def get_bin_index(self, value):
        if value < self._bin_edges[0]:
            return OUT_OF_RANGE
        for bin_index in range(1, self._bin_edges.size):
            if value < self._bin_edges[bin_index]:
                return bin_index - 1
        return OUT_OF_RANGE

    def get_bin_size(self, index):
        self._check_index(index, self.n_bins - 1)
        return float(self._bin_edges[index + 1] - self._bin_edges[index])

    def get_bin_low_edge(self, index):
        self._check_index(index, self.n_bins)
        return float(self._bin_edges[index])


class TwoStepBinning(VariableBinning):
    """
    Fine linear bins near zero followed by logarithmic bins.

    The first bin straddles zero with a width of ``2*eps*dlin`` and is
    centered on zero. Uniform bins of width ``dlin`` follow up to the
    breakpoint, then bins grow geometrically with ratio
    ``(breakpoint+dlog)/breakpoint`` until there are ``n_bins`` in total.
    Logarithmic bins are centered on the geometric mean of their edges.

    Parameters
    ----------
    n_bins : int
        Total number of bins.
    breakpoint : float
        Start of the logarithmic region.
    dlog : float
        Width of the first logarithmic bin.
    dlin : float
        Width of the uniform bins.
    eps : float
        Half-width of the zero bin in units of ``dlin``.
    """

    def __init__(self, n_bins: int, breakpoint: float, dlog: float, dlin: float, eps: float = 1e-3):
        if not (breakpoint > 0 and dlog > 0 and dlin > 0 and eps > 0):
            raise ConfigurationError("breakpoint, dlog, dlin and eps must all be positive")
        n_uniform = math.floor(breakpoint / dlin)
        if n_bins < n_uniform + 1:
            raise ConfigurationError(
                f"n_bins={n_bins} too small for {n_uniform} uniform bins below the breakpoint"
            )
        edges = [-eps * dlin, +eps * dlin]
        centers = [0.0]
        for k in range(1, n_uniform + 1):
            edges.append(k * dlin)
            centers.append((k - 0.5) * dlin)
        ratio = math.log((breakpoint + dlog) / breakpoint)
        for k in range(1, n_bins - n_uniform):
            edges.append(breakpoint * math.exp(ratio * k))
            centers.append(breakpoint * math.exp(ratio * (k - 0.5)))
        super().__init__(edges)
        self._bin_centers = np.array(centers)
        logger.debug(f"TwoStepBinning with {n_uniform} uniform and {n_bins - n_uniform - 1} log bins")

    def get_bin_center(self, index):
        self._check_index(index, self.n_bins - 1)
        return float(self._bin_centers[index])
