"""
Data Loading Utilities
=======================

Loads the prepared observation file into an immutable ObservationSet:
- CSV files (.csv)
- Excel files (.xls, .xlsx)
- MATLAB files (.mat)

Columns are selected in varobs order, optionally through an alias map
from observable names to file columns. Missing entries stay NaN and are
skipped by the Kalman filter. Structural problems (absent columns, sample
outside the file, non-numeric data) raise DataError before estimation
starts.
"""

import os
import numpy as np
import pandas as pd
import scipy.io
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

from .exceptions import DataError


@dataclass(frozen=True)
class ObservationSet:
    """
    Time-indexed observed series, immutable during an estimation run.

    Attributes:
        data: Observations (T x n_obs), NaN for missing entries
        names: Observable names, in varobs order
        index: Time index
    """
    data: np.ndarray
    names: Tuple[str, ...]
    index: pd.Index

    def __post_init__(self):
        data = np.array(self.data, dtype=float)
        if data.ndim != 2 or data.shape[1] != len(self.names):
            raise DataError(f"Data of shape {data.shape} does not match {len(self.names)} observables")
        data.setflags(write=False)
        object.__setattr__(self, 'data', data)
        object.__setattr__(self, 'names', tuple(self.names))
        index = pd.RangeIndex(data.shape[0]) if self.index is None else pd.Index(self.index)
        if len(index) != data.shape[0]:
            raise DataError(f"Index of length {len(index)} for {data.shape[0]} observations")
        object.__setattr__(self, 'index', index)

    @property
    def n_periods(self) -> int:
        return self.data.shape[0]

    @property
    def n_obs(self) -> int:
        return self.data.shape[1]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.data, index=self.index, columns=list(self.names))


def load_excel_data(filepath: str, sheet_name=0, header: Optional[int] = 0) -> pd.DataFrame:
    """
    Load data from Excel file.

    Args:
        filepath: Path to Excel file
        sheet_name: Sheet name or position (first sheet by default)
        header: Row number to use as column names (0-indexed)

    Returns:
        DataFrame with data
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        return pd.read_excel(filepath, sheet_name=sheet_name, header=header)
    except ValueError as e:
        raise DataError(f"Error loading Excel file: {e}") from e


def load_mat_data(filepath: str) -> pd.DataFrame:
    """
    Load data from MATLAB .mat file.

    Each vector variable of the file becomes a column.

    Args:
        filepath: Path to .mat file

    Returns:
        DataFrame with one column per vector variable
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        mat_data = scipy.io.loadmat(filepath)
    except (ValueError, OSError) as e:
        raise DataError(f"Error loading MAT file: {e}") from e

    # Remove MATLAB metadata and non-vector entries
    columns = {}
    for key, value in mat_data.items():
        if key.startswith('__'):
            continue
        arr = np.asarray(value)
        if arr.dtype.kind in 'fiu' and arr.ndim <= 2 and min(arr.shape, default=0) <= 1:
            columns[key] = arr.reshape(-1)

    lengths = {len(v) for v in columns.values()}
    if len(lengths) > 1:
        raise DataError(f"Series in {filepath} have different lengths: {sorted(lengths)}")
    return pd.DataFrame(columns)


def read_table(filepath: str) -> pd.DataFrame:
    """Read a CSV, Excel or MAT file into a DataFrame."""
    ext = os.path.splitext(filepath)[1].lower()
    if ext == '.csv':
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"File not found: {filepath}")
        return pd.read_csv(filepath)
    if ext in ('.xls', '.xlsx'):
        return load_excel_data(filepath)
    if ext == '.mat':
        return load_mat_data(filepath)
    raise DataError(f"Unsupported data file type '{ext}'")


def get_estimation_sample(df: pd.DataFrame, first_obs: int = 1,
                          nobs: Optional[int] = None) -> pd.DataFrame:
    """
    Extract estimation sample matching Dynare conventions.

    Args:
        df: Full dataset
        first_obs: First observation to use (1-indexed, as in Dynare)
        nobs: Number of observations to use (None = all remaining)

    Returns:
        Estimation sample DataFrame
    """
    if first_obs < 1 or first_obs > len(df):
        raise DataError(f"first_obs={first_obs} outside a file with {len(df)} rows")

    # Convert to 0-indexed
    start_idx = first_obs - 1
    end_idx = start_idx + nobs if nobs is not None else len(df)
    if end_idx > len(df):
        raise DataError(f"Sample of {nobs} observations from first_obs={first_obs} "
                        f"exceeds the {len(df)} rows of the file")

    return df.iloc[start_idx:end_idx].copy()


def load_observations(filepath: str, names: Sequence[str],
                      aliases: Optional[Mapping[str, str]] = None,
                      first_obs: int = 1, nobs: Optional[int] = None,
                      demean: bool = False, index_col: Optional[str] = None) -> ObservationSet:
    """
    Load the observables of an estimation run.

    Args:
        filepath: CSV, Excel or MAT file
        names: Observable names, in varobs order
        aliases: Mapping observable name -> file column, where they differ
        first_obs: First observation used (1-indexed)
        nobs: Number of observations used (None = all remaining)
        demean: Subtract the sample mean of each series
        index_col: Column used as the time index

    Returns:
        ObservationSet

    Raises:
        DataError: Missing columns, sample outside the file, or non-numeric data
    """
    df = read_table(filepath)
    aliases = dict(aliases or {})
    columns = [aliases.get(name, name) for name in names]

    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise DataError(f"Columns {missing} not found in {filepath}; "
                        f"available: {list(df.columns)}")

    if index_col is not None:
        if index_col not in df.columns:
            raise DataError(f"Index column '{index_col}' not found in {filepath}")
        df = df.set_index(index_col)

    sample = get_estimation_sample(df, first_obs, nobs)[columns]
    try:
        values = sample.apply(pd.to_numeric, errors='raise').to_numpy(dtype=float)
    except (ValueError, TypeError) as e:
        raise DataError(f"Non-numeric observations in {filepath}: {e}") from e

    if np.isnan(values).all(axis=0).any():
        empty = [n for n, col in zip(names, values.T) if np.isnan(col).all()]
        raise DataError(f"Observables without any data: {empty}")

    if demean:
        values = values - np.nanmean(values, axis=0)

    return ObservationSet(values, tuple(names), sample.index)


def describe_data(observations: ObservationSet) -> pd.DataFrame:
    """
    Compute descriptive statistics for data.

    Args:
        observations: ObservationSet

    Returns:
        DataFrame with descriptive statistics
    """
    df = observations.to_frame()
    stats = pd.DataFrame({
        'mean': df.mean(),
        'std': df.std(),
        'min': df.min(),
        'max': df.max(),
        'missing': df.isna().sum(),
    })

    return stats
