"""
Data Loading Utilities
=======================

Functions to load observables and shape them for the forecast pipeline:
- Load Excel (.xls, .xlsx), CSV and MATLAB (.mat) files
- Quarterly date indexing
- Convert a DataFrame to the (T x n_obs) matrix the filter expects,
  ordered as the model's observables
- Split the data into the main sample and the conditional (nowcast) rows
- Convert output arrays back to labelled DataFrames
"""

import os
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import scipy.io

from .errors import ConfigurationError


COND_TYPES = ('none', 'semi', 'full')


def load_excel_data(filepath: str, sheet_name: Optional[str] = 0,
                    header: Optional[int] = 0) -> pd.DataFrame:
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

    return pd.read_excel(filepath, sheet_name=sheet_name, header=header)


def load_mat_data(filepath: str) -> Dict:
    """
    Load data from MATLAB .mat file.

    Args:
        filepath: Path to .mat file

    Returns:
        Dictionary with variable names as keys
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    mat_data = scipy.io.loadmat(filepath)
    # Remove MATLAB metadata
    return {k: v for k, v in mat_data.items() if not k.startswith('__')}


def load_data(filepath: str, observable_names: Optional[Sequence[str]] = None,
              start_date: Optional[str] = None) -> pd.DataFrame:
    """
    Load observables from a .csv, .xls/.xlsx or .mat file.

    For .mat files each observable is a variable holding a column vector.

    Args:
        filepath: Path to the data file
        observable_names: Observables to read from a .mat file (all
            non-metadata variables if None)
        start_date: First quarter, sets a quarterly DatetimeIndex

    Returns:
        DataFrame with one column per observable
    """
    ext = os.path.splitext(filepath)[1].lower()
    if ext == '.csv':
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"File not found: {filepath}")
        df = pd.read_csv(filepath)
    elif ext in ('.xls', '.xlsx'):
        df = load_excel_data(filepath)
    elif ext == '.mat':
        mat = load_mat_data(filepath)
        names = list(observable_names) if observable_names is not None else list(mat)
        df = pd.DataFrame({name: np.asarray(mat[name], dtype=float).ravel()
                           for name in names})
    else:
        raise ValueError(f"Unsupported data file extension: {ext}")

    if start_date is not None:
        df.index = quarterly_index(start_date, len(df))

    return df


def quarterly_index(start_date: str, periods: int) -> pd.DatetimeIndex:
    """Quarter-start DatetimeIndex."""
    return pd.date_range(start=start_date, periods=periods, freq='QS')


def df_to_matrix(df: pd.DataFrame, observable_names: Sequence[str]) -> np.ndarray:
    """
    Extract the observables from a DataFrame as a float matrix.

    Columns other than the observables (e.g. a 'date' column) are ignored.
    Missing values become NaN.

    Args:
        df: Data with one column per observable
        observable_names: Observables in model order

    Returns:
        Data matrix (T x n_obs)
    """
    missing = [name for name in observable_names if name not in df.columns]
    if missing:
        raise ConfigurationError(f"Data is missing observables: {missing}")

    return df[list(observable_names)].to_numpy(dtype=float, na_value=np.nan)


def split_conditional(data: np.ndarray, cond_type: str,
                      n_cond: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split data into the main sample and the conditional rows.

    With cond_type 'none' all rows are main sample.

    Args:
        data: Data matrix (T x n_obs)
        cond_type: 'none', 'semi' or 'full'
        n_cond: Number of conditional periods at the end of the data

    Returns:
        (main_sample, conditional_rows)
    """
    if cond_type not in COND_TYPES:
        raise ConfigurationError(f"Invalid cond_type: {cond_type}. Allowed: {list(COND_TYPES)}")

    if cond_type == 'none':
        return data, data[:0]

    if n_cond < 1 or n_cond >= data.shape[0]:
        raise ConfigurationError(
            f"Conditional forecast needs 1 <= n_conditional_periods < {data.shape[0]}, "
            f"got {n_cond}")
    return data[:-n_cond], data[-n_cond:]


def output_to_dataframe(values: np.ndarray, names: Sequence[str],
                        index: Optional[pd.Index] = None) -> pd.DataFrame:
    """
    Label a (T x n_vars) output array.

    Args:
        values: Output array for one draw
        names: Variable names
        index: Row index, e.g. a quarterly_index

    Returns:
        DataFrame
    """
    values = np.asarray(values)
    if values.ndim != 2 or values.shape[1] != len(names):
        raise ValueError(f"Expected a (T x {len(names)}) array, got {values.shape}")
    return pd.DataFrame(values, columns=list(names), index=index)


def describe_data(df: pd.DataFrame) -> pd.DataFrame:
    """
    Compute descriptive statistics for data.

    Args:
        df: Input DataFrame

    Returns:
        DataFrame with descriptive statistics
    """
    return pd.DataFrame({
        'mean': df.mean(),
        'std': df.std(),
        'min': df.min(),
        'max': df.max(),
        'n_missing': df.isna().sum(),
    })
