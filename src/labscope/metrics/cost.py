import numpy as np
import pandas as pd

from labscope.config import DEFAULT_COST_FN, DEFAULT_COST_FP

def _binary(y, name: str) -> np.ndarray:
    a = np.asarray(y).ravel()
    if not np.isin(a, [0, 1]).all():
        raise ValueError(f"{name} must contain only 0/1 labels")
    return a.astype(int)

def binary_cost(y_true, y_pred, cost_fp: float = DEFAULT_COST_FP, cost_fn: float = DEFAULT_COST_FN) -> float:
    """
    cost_fp * FP + cost_fn * FN for binary labels (1 = positive finding).
    """
    yt = _binary(y_true, "y_true")
    yp = _binary(y_pred, "y_pred")
    if yt.shape != yp.shape:
        raise ValueError("y_true and y_pred shapes must match")
    fp = np.sum((yp == 1) & (yt == 0))
    fn = np.sum((yp == 0) & (yt == 1))
    return float(cost_fp * fp + cost_fn * fn)

def confusion_cost_table(y_true, y_pred, cost_fp: float = DEFAULT_COST_FP, cost_fn: float = DEFAULT_COST_FN) -> pd.DataFrame:
    """Return a DataFrame with counts and per-cell costs (rows = actual, cols = predicted)."""
    yt = _binary(y_true, "y_true")
    yp = _binary(y_pred, "y_pred")
    counts = pd.crosstab(yt, yp, dropna=False).reindex(index=range(2), columns=range(2), fill_value=0)
    costs = pd.DataFrame([[0.0, cost_fp], [cost_fn, 0.0]], index=range(2), columns=range(2))
    return pd.concat({"count": counts, "cost": costs, "total": counts * costs}, axis=1)
