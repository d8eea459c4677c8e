from typing import Dict

import numpy as np
import pandas as pd
from sklearn.metrics import (average_precision_score, balanced_accuracy_score,
                             confusion_matrix, f1_score,
                             matthews_corrcoef, precision_recall_curve,
                             precision_score, recall_score, roc_auc_score,
                             roc_curve)

from labscope.config import DEFAULT_COST_FN, DEFAULT_COST_FP


def _to_array(y) -> np.ndarray:
    """Coerce labels to a flat numpy array."""
    return np.asarray(y).ravel()


def check_binary_inputs(y_true, prob):
    """Validates labels (0/1) and scores (same length, finite) and returns numpy arrays."""
    y = _to_array(y_true)
    p = _to_array(prob).astype(float)
    if y.shape != p.shape:
        raise ValueError(f"y_true and prob shapes must match ({y.shape} vs {p.shape})")
    if not np.isin(y, [0, 1]).all():
        raise ValueError("y_true must contain only 0/1 labels")
    if not np.all(np.isfinite(p)):
        raise ValueError("prob contains NaN or infinite values")
    return y.astype(int), p


def metrics_at_threshold(
    y_true, prob, threshold: float = 0.5, cost_fp: float = DEFAULT_COST_FP, cost_fn: float = DEFAULT_COST_FN
) -> Dict[str, float]:
    """
    Imbalance-aware summary of a scored binary classifier at one decision threshold.

    Ranking metrics (AUC, average precision) are NaN when only
    one class is present. Prevalence is reported so PR-AUC can be read against
    its no-skill baseline.
    """
    y, p = check_binary_inputs(y_true, prob)
    y_pred = (p >= threshold).astype(int)
    tn, fp, fn, tp = confusion_matrix(y, y_pred, labels=[0, 1]).ravel()
    both_classes = np.unique(y).size == 2

    return {
        "threshold": float(threshold),
        "AUC": float(roc_auc_score(y, p)) if both_classes else np.nan,
        "AveragePrecision": float(average_precision_score(y, p)) if both_classes else np.nan,
        "Brier": float(np.mean((np.clip(p, 0, 1) - y) ** 2)),
        "MacroF1": float(f1_score(y, y_pred, average="macro", zero_division=0)),
        "F1_pos": float(f1_score(y, y_pred, pos_label=1, zero_division=0)),
        "Recall_pos": float(recall_score(y, y_pred, pos_label=1, zero_division=0)),
        "Precision_pos": float(precision_score(y, y_pred, pos_label=1, zero_division=0)),
        "Specificity": float(tn / (tn + fp)) if (tn + fp) else np.nan,
        "MCC": float(matthews_corrcoef(y, y_pred)),
        "BalancedAccuracy": float(balanced_accuracy_score(y, y_pred)),
        "Accuracy": float((tp + tn) / len(y)),
        "Prevalence": float(y.mean()),
        "TP": float(tp),
        "FP": float(fp),
        "TN": float(tn),
        "FN": float(fn),
        "Cost": float(cost_fp * fp + cost_fn * fn),
    }


def curve_summary(y_true, prob) -> Dict[str, pd.DataFrame]:
    """ROC and precision-recall curves as tables (one row per operating point)."""
    y, p = check_binary_inputs(y_true, prob)
    if np.unique(y).size < 2:
        raise ValueError("Curves need both classes present in y_true")

    fpr, tpr, roc_thr = roc_curve(y, p)
    precision, recall, pr_thr = precision_recall_curve(y, p)

    roc = pd.DataFrame({"threshold": roc_thr, "fpr": fpr, "tpr": tpr})
    # precision_recall_curve returns one more (precision, recall) pair than thresholds.
    pr = pd.DataFrame({
        "threshold": np.append(pr_thr, np.nan),
        "precision": precision,
        "recall": recall,
    })
    return {"roc": roc, "pr": pr}


def compare_metrics(y_true, prob, thresholds, cost_fp: float = DEFAULT_COST_FP, cost_fn: float = DEFAULT_COST_FN) -> pd.DataFrame:
    """One `metrics_at_threshold` row per threshold, e.g. default 0.5 vs a tuned cut-off."""
    rows = [metrics_at_threshold(y_true, prob, t, cost_fp, cost_fn) for t in thresholds]
    return pd.DataFrame(rows)
