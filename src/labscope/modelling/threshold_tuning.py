from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import roc_curve

from labscope.config import DEFAULT_COST_FN, DEFAULT_COST_FP
from labscope.errors import InvalidParameterError
from labscope.metrics.classification import check_binary_inputs, metrics_at_threshold
from labscope.modelling.classifier import positive_scores

STRATEGIES = ("cost", "f1", "youden", "sensitivity")


def default_threshold_grid() -> np.ndarray:
    """Dense grid near 0, where rare-positive models put most of their thresholds."""
    thr_grid = np.concatenate([
        np.linspace(0.00, 0.10, 101),
        np.linspace(0.11, 0.80, 70),
        np.linspace(0.81, 0.99, 19)
    ])
    return np.unique(np.clip(thr_grid, 0, 1))


def _safe_div(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    num = num.astype(float)
    return np.divide(num, den, out=np.zeros_like(num), where=den > 0)


def threshold_sweep(
    y_true,
    prob,
    thresholds: Optional[np.ndarray] = None,
    cost_fp: float = DEFAULT_COST_FP,
    cost_fn: float = DEFAULT_COST_FN,
) -> pd.DataFrame:
    """
    Confusion counts and derived metrics for every threshold of a grid.

    Vectorised: a (n_samples, n_thresholds) prediction matrix is built once.
    A row is predicted positive when prob >= threshold.
    """
    y, p = check_binary_inputs(y_true, prob)
    thr = default_threshold_grid() if thresholds is None else np.asarray(thresholds, dtype=float).ravel()

    preds = p[:, np.newaxis] >= thr[np.newaxis, :]
    pos = (y == 1)[:, np.newaxis]
    neg = ~pos

    tp = np.sum(preds & pos, axis=0)
    fp = np.sum(preds & neg, axis=0)
    fn = np.sum(~preds & pos, axis=0)
    tn = np.sum(~preds & neg, axis=0)

    precision = _safe_div(tp, tp + fp)
    recall = _safe_div(tp, tp + fn)
    specificity = _safe_div(tn, tn + fp)
    f1 = _safe_div(2 * precision * recall, precision + recall)

    return pd.DataFrame({
        "threshold": thr,
        "TP": tp, "FP": fp, "TN": tn, "FN": fn,
        "precision": precision,
        "recall": recall,
        "specificity": specificity,
        "f1": f1,
        "cost": fp * cost_fp + fn * cost_fn,
    })


def best_threshold_by_cost(
    y_true, prob, cost_fp: float = DEFAULT_COST_FP, cost_fn: float = DEFAULT_COST_FN,
    thresholds: Optional[np.ndarray] = None,
) -> Tuple[float, float]:
    """Threshold with minimum cost_fp * FP + cost_fn * FN (lowest threshold on ties)."""
    sweep = threshold_sweep(y_true, prob, thresholds, cost_fp, cost_fn)
    best_idx = int(np.argmin(sweep["cost"].values))
    return float(sweep["threshold"].iloc[best_idx]), float(sweep["cost"].iloc[best_idx])


def best_threshold_by_fbeta(
    y_true, prob, beta: float = 1.0, thresholds: Optional[np.ndarray] = None
) -> Tuple[float, float]:
    """Threshold maximising F-beta of the positive class (beta > 1 favours recall)."""
    if beta <= 0:
        raise InvalidParameterError(f"beta must be positive, got {beta}")
    sweep = threshold_sweep(y_true, prob, thresholds)
    p, r = sweep["precision"].values, sweep["recall"].values
    b2 = beta ** 2
    fbeta = _safe_div((1 + b2) * p * r, b2 * p + r)
    best_idx = int(np.argmax(fbeta))
    return float(sweep["threshold"].iloc[best_idx]), float(fbeta[best_idx])


def youden_threshold(y_true, prob) -> Tuple[float, float]:
    """ROC point maximising Youden's J = TPR - FPR."""
    y, p = check_binary_inputs(y_true, prob)
    fpr, tpr, thr = roc_curve(y, p, drop_intermediate=False)
    finite = np.isfinite(thr)
    j = (tpr - fpr)[finite]
    best_idx = int(np.argmax(j))
    return float(np.clip(thr[finite][best_idx], 0.0, 1.0)), float(j[best_idx])


def threshold_for_sensitivity(y_true, prob, target: float = 0.9) -> Tuple[float, float]:
    """
    Highest threshold whose sensitivity reaches `target`.

    Returns (threshold, achieved sensitivity).
    """
    if not 0.0 < target <= 1.0:
        raise InvalidParameterError(f"target sensitivity must be in (0, 1], got {target}")
    y, p = check_binary_inputs(y_true, prob)
    fpr, tpr, thr = roc_curve(y, p, drop_intermediate=False)

    idxs = np.where(tpr >= target)[0]
    # tpr always reaches 1.0 at the last ROC point, so idxs is never empty.
    idx = int(idxs[0])
    optimal_threshold = thr[idx]
    if not np.isfinite(optimal_threshold):
        optimal_threshold = 1.0
    return float(np.clip(optimal_threshold, 0.0, 1.0)), float(tpr[idx])


def tune_threshold(
    model,
    X_val,
    y_val,
    strategy: str = "cost",
    cost_fp: float = DEFAULT_COST_FP,
    cost_fn: float = DEFAULT_COST_FN,
    beta: float = 1.0,
    target_sensitivity: float = 0.9,
    verbose: bool = True,
) -> Tuple[float, Dict[str, float]]:
    """
    Picks a decision threshold for a pre-trained classifier on validation data.

    Args:
        model: Fitted classifier (predict_proba / decision_function / predict).
        strategy: 'cost', 'f1' (F-beta with `beta`), 'youden' or 'sensitivity'.

    Returns:
        tuple: (threshold, metrics_at_threshold dict)
    """
    if strategy not in STRATEGIES:
        raise InvalidParameterError(f"Unknown strategy '{strategy}'. Use one of {STRATEGIES}.")

    prob = positive_scores(model, X_val)

    if strategy == "cost":
        best_thr, _ = best_threshold_by_cost(y_val, prob, cost_fp, cost_fn)
    elif strategy == "f1":
        best_thr, _ = best_threshold_by_fbeta(y_val, prob, beta=beta)
    elif strategy == "youden":
        best_thr, _ = youden_threshold(y_val, prob)
    else:
        best_thr, _ = threshold_for_sensitivity(y_val, prob, target=target_sensitivity)

    metrics = metrics_at_threshold(y_val, prob, best_thr, cost_fp, cost_fn)

    if verbose:
        print(
            f"[THR] Strategy = {strategy} | Best Threshold = {best_thr:.3f} | "
            f"Cost = {metrics['Cost']:.1f} | F1 = {metrics['F1_pos']:.3f} | Recall = {metrics['Recall_pos']:.3f}"
        )
    return best_thr, metrics
