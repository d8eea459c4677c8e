from typing import Optional, Sequence

import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype

from labscope.errors import DimensionMismatchError, InvalidParameterError


def positional_columns(n_features: int) -> list:
    return [f"x{i}" for i in range(n_features)]


def as_feature_frame(X, columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Coerces a feature matrix into a float DataFrame with NaN as the absent marker.

    - DataFrames keep their column names (and are re-ordered to `columns` if given).
    - Arrays / nested lists get `columns` when provided, otherwise x0..xN-1.
    - None / pd.NA become NaN. Any column that cannot be read as numbers is rejected.

    Args:
        X: pd.DataFrame, np.ndarray or list of rows.
        columns: Expected column order (e.g. the reference schema).

    Returns:
        pd.DataFrame of float64.
    """
    if isinstance(X, pd.DataFrame):
        df = X.copy()
    else:
        arr = np.asarray(X)
        if arr.dtype.kind not in "biuf":
            arr = np.asarray(X, dtype=object)
        if arr.ndim != 2:
            raise InvalidParameterError(
                f"Feature matrix must be 2-D (rows x columns), got {arr.ndim}-D input."
            )
        if columns is not None and arr.shape[1] != len(columns):
            raise DimensionMismatchError(
                f"Query has {arr.shape[1]} columns, reference has {len(columns)}."
            )
        names = list(columns) if columns is not None else positional_columns(arr.shape[1])
        df = pd.DataFrame(arr, columns=names)

    if df.shape[1] == 0:
        raise InvalidParameterError("Feature matrix has no columns.")
    if df.columns.duplicated().any():
        dupes = df.columns[df.columns.duplicated()].tolist()
        raise InvalidParameterError(f"Duplicate column names: {dupes}")

    for col in df.columns:
        if is_numeric_dtype(df[col]) and df[col].dtype != bool:
            continue
        try:
            df[col] = pd.to_numeric(df[col], errors="raise")
        except (ValueError, TypeError) as e:
            raise InvalidParameterError(f"Column '{col}' is not numeric: {e}") from e

    df = df.astype(float)

    if columns is not None:
        df = align_columns(df, columns)
    return df


def align_columns(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Re-orders `df` to `columns`; the column sets must be identical."""
    expected = list(columns)
    if list(df.columns) == expected:
        return df

    missing = [c for c in expected if c not in df.columns]
    extra = [c for c in df.columns if c not in expected]
    if missing or extra:
        raise DimensionMismatchError(
            f"Column mismatch against reference schema. Missing: {missing}, unexpected: {extra}"
        )
    return df[expected]


def impute_with_mean(df: pd.DataFrame, mean) -> pd.DataFrame:
    """
    Fills absent values with the reference column mean (zero deviation on that axis).

    `mean` is a Series keyed by column or an array aligned with `df.columns`.
    """
    if not df.isna().any().any():
        return df
    if not isinstance(mean, pd.Series):
        mean = pd.Series(np.asarray(mean, dtype=float), index=df.columns)
    return df.fillna(mean)


def missing_fraction(df: pd.DataFrame) -> pd.Series:
    """Share of absent features per row, for callers that want to exclude sparse records."""
    return df.isna().mean(axis=1)
