"""
File I/O for BAO fit inputs and results.

This module provides readers for:
- ``<data>.params`` records (value, ignored value, log-lambda, separation, redshift)
- ``<data>.cov`` records (row, column, covariance)
- the result file written by LyaBaoLikelihood.dump

Any malformed input line aborts the load with a MalformedInputError that
names the file, the line number and the offending text.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import numpy as np

from .binning import VariableBinning
from .core_utils import MalformedInputError, computation_phase
from .dataset import LyaData

logger = logging.getLogger(__name__)

__all__ = [
    'parse_params_line',
    'parse_covariance_line',
    'read_params_file',
    'read_covariance_file',
    'load_dataset',
    'FitDump',
    'read_fit_dump',
]

_INT = r"(0|(?:[1-9][0-9]*))"
_FLOAT = r"([-+]?[0-9]*\.?[0-9]+(?:[eE][-+]?[0-9]+)?)"

# value, second value, then (ll, sep, z): either decorated or five bare fields
_PARAMS_PATTERNS = (
    re.compile(r"\s*{0}\s+{0}\s*\| Lya covariance 3D \({0},{0},{0}\)\s*".format(_FLOAT)),
    re.compile(r"\s*{0}\s+{0}\s+{0}\s+{0}\s+{0}\s*".format(_FLOAT)),
)
_COV_PATTERN = re.compile(r"\s*{0}\s+{0}\s+{1}\s*".format(_INT, _FLOAT))


# ============================================================================
# Input records
# ============================================================================

def parse_params_line(line: str):
    """
    Parse one params record.

    Returns
    -------
    tuple of float
        (value, secondary, log_lambda, separation, redshift), or None if
        the line does not match.
    """
    for pattern in _PARAMS_PATTERNS:
        match = pattern.fullmatch(line)
        if match:
            return tuple(float(token) for token in match.groups())
    return None


def parse_covariance_line(line: str):
    """Parse one covariance record into (i, j, value), or None if it does not match."""
    match = _COV_PATTERN.fullmatch(line)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), float(match.group(3))


def _read_lines(path):
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Unable to open {path}")
    with open(path, 'r') as f:
        for line_number, line in enumerate(f, start=1):
            yield line_number, line.rstrip("\n")


def read_params_file(path, data: LyaData) -> int:
    """
    Add every record of a params file to data.

    The second value on each line is read and discarded; only the first
    value is fitted.

    Returns
    -------
    int
        Number of records added.
    """
    n_read = 0
    for line_number, line in _read_lines(path):
        tokens = parse_params_line(line)
        if tokens is None:
            raise MalformedInputError("Badly formatted params line", path, line_number, line)
        value, _, log_lambda, separation, redshift = tokens
        data.add_data(value, log_lambda, separation, redshift)
        n_read += 1
    logger.debug(f"Parsed {n_read} params records from {path}")
    return n_read


def read_covariance_file(path, data: LyaData) -> int:
    """Add every record of a covariance file to finalized data and return the count."""
    n_read = 0
    for line_number, line in _read_lines(path):
        tokens = parse_covariance_line(line)
        if tokens is None:
            raise MalformedInputError("Badly formatted cov line", path, line_number, line)
        data.add_covariance(*tokens)
        n_read += 1
    logger.debug(f"Parsed {n_read} covariance records from {path}")
    return n_read


def load_dataset(data_name, log_lambda_binning, separation_binning, redshift_binning, cosmology) -> LyaData:
    """
    Build a fully finalized LyaData from ``<data_name>.params`` and ``<data_name>.cov``.
    """
    data = LyaData(log_lambda_binning, separation_binning, redshift_binning, cosmology)
    params_name = f"{data_name}.params"
    cov_name = f"{data_name}.cov"
    with computation_phase(f"loading {data_name}"):
        read_params_file(params_name, data)
        data.finalize_data()
        logger.info(f"Read {data.n_data} of {data.size} data values from {params_name}")

        read_covariance_file(cov_name, data)
        data.finalize_covariance()
        n_cov = (data.n_data * (data.n_data + 1)) // 2
        logger.info(f"Read {data.n_cov} of {n_cov} covariance values from {cov_name}")
    return data


# ============================================================================
# Fit results
# ============================================================================

@dataclass
class FitDump:
    """Contents of a result file written by LyaBaoLikelihood.dump."""
    log_lambda_binning: VariableBinning
    separation_binning: VariableBinning
    redshift_binning: VariableBinning
    model_bins: int
    n_contour: int
    params: np.ndarray
    index: np.ndarray
    data: np.ndarray
    pull: np.ndarray
    model_r3d: np.ndarray
    model_prediction: np.ndarray
    contours: Optional[np.ndarray]

    @property
    def n_data(self) -> int:
        return len(self.index)


class _TokenReader:
    """Sequential reader of whitespace-delimited lines with line tracking."""

    def __init__(self, path):
        self.path = path
        with open(path, 'r') as f:
            self.lines: List[str] = f.read().splitlines()
        self.position = 0

    def next_fields(self, count=None):
        if self.position >= len(self.lines):
            raise MalformedInputError(f"Unexpected end of {self.path}")
        line = self.lines[self.position]
        self.position += 1
        fields = line.split()
        if count is not None and len(fields) != count:
            raise MalformedInputError(f"Expected {count} fields", self.path, self.position, line)
        return fields

    def remaining(self):
        return len(self.lines) - self.position

    def convert(self, fields, kind):
        try:
            return [kind(field) for field in fields]
        except ValueError as e:
            raise MalformedInputError(f"Invalid value ({e})", self.path, self.position,
                                      self.lines[self.position - 1]) from e


def _read_binning(reader):
    fields = reader.next_fields()
    n_bins = reader.convert(fields[:1], int)[0]
    if len(fields) != n_bins + 2:
        raise MalformedInputError(f"Expected {n_bins + 1} bin edges", reader.path, reader.position,
                                  reader.lines[reader.position - 1])
    return VariableBinning(reader.convert(fields[1:], float))


def read_fit_dump(path) -> FitDump:
    """
    Parse a result file.

    Returns
    -------
    FitDump
        ``model_r3d`` and ``model_prediction`` have shape
        (n_z, model_bins, model_bins); ``contours`` has shape
        (n_sets, n_contour, 2) or is None.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Result file not found: {path}")
    reader = _TokenReader(path)
    ll_bins = _read_binning(reader)
    sep_bins = _read_binning(reader)
    z_bins = _read_binning(reader)
    n_data, model_bins, n_contour = reader.convert(reader.next_fields(3), int)

    fields = reader.next_fields()
    n_par = reader.convert(fields[:1], int)[0]
    if len(fields) != n_par + 1:
        raise MalformedInputError(f"Expected {n_par} parameter values", path, reader.position,
                                  reader.lines[reader.position - 1])
    params = np.array(reader.convert(fields[1:], float))

    index = np.empty(n_data, dtype=int)
    data = np.empty(n_data)
    pull = np.empty(n_data)
    for k in range(n_data):
        fields = reader.next_fields(3)
        index[k] = reader.convert(fields[:1], int)[0]
        data[k], pull[k] = reader.convert(fields[1:], float)

    n_grid = z_bins.n_bins * model_bins * model_bins
    grid = np.array([reader.convert(reader.next_fields(2), float) for _ in range(n_grid)]).reshape(
        z_bins.n_bins, model_bins, model_bins, 2)

    contours = None
    if n_contour > 0:
        remaining = reader.remaining()
        if remaining % n_contour != 0:
            raise MalformedInputError(f"{remaining} contour lines are not a multiple of {n_contour} in {path}")
        points = [reader.convert(reader.next_fields(2), float) for _ in range(remaining)]
        contours = np.array(points).reshape(-1, n_contour, 2)
    elif reader.remaining():
        raise MalformedInputError(f"Unexpected trailing lines in {path}")

    logger.debug(f"Read fit results for {n_data} observations from {path}")
    return FitDump(ll_bins, sep_bins, z_bins, model_bins, n_contour, params, index, data, pull,
                   grid[..., 0], grid[..., 1], contours)
