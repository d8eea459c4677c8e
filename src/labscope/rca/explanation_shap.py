import os

import numpy as np
import pandas as pd
import shap

from labscope.config import RANDOM_STATE
from labscope.modelling.classifier import positive_scores


def _positive_class(shap_values) -> np.ndarray:
    """
    Normalises the shapes TreeExplainer returns for binary classifiers.

    Older SHAP versions give a list [neg, pos]; newer ones a (N, M, 2) array
    for some models and a single (N, M) log-odds array for others.
    """
    if isinstance(shap_values, list):
        return np.asarray(shap_values[1])
    shap_values = np.asarray(shap_values)
    if shap_values.ndim == 3:
        return shap_values[:, :, 1]
    return shap_values


def compute_shap_global(
    model,
    X,
    random_state=RANDOM_STATE,
    max_rows=5000,
    save_artifacts=False,
    output_dir=".",
    file_prefix="",
    verbose=False,
):
    """
    Computes global SHAP values using TreeExplainer (optimized for tree models).

    Args:
        model: Pre-trained tree-based classifier.
        X (pd.DataFrame): Data to explain (usually a validation set).
        random_state (int): Seed for sampling.
        max_rows (int): Max rows to use for SHAP to strictly control runtime.
        save_artifacts (bool): Whether to save the importance table as CSV.
        output_dir (str): Directory to save artifacts.
        file_prefix (str): Prefix for artifact filenames.

    Returns:
        tuple: (shap_values, X_sampled, global_importance_df)
    """
    if not isinstance(X, pd.DataFrame):
        X = pd.DataFrame(X, columns=[f"x{i}" for i in range(np.asarray(X).shape[1])])

    if len(X) > max_rows:
        rng = np.random.RandomState(random_state)
        idx = rng.choice(len(X), size=max_rows, replace=False)
        X_shap = X.iloc[np.sort(idx)]
    else:
        X_shap = X

    if verbose:
        print(f"[SHAP] initializing TreeExplainer for model: {type(model).__name__}")
    explainer = shap.TreeExplainer(model)
    shap_pos = _positive_class(explainer.shap_values(X_shap))

    if verbose:
        print("[SHAP] computed. Shape:", shap_pos.shape)

    abs_means = np.abs(shap_pos).mean(axis=0)
    global_importance = (
        pd.DataFrame({"feature": X_shap.columns, "mean_abs_shap": abs_means})
        .sort_values("mean_abs_shap", ascending=False, kind="mergesort")
        .reset_index(drop=True)
    )

    if save_artifacts:
        os.makedirs(output_dir, exist_ok=True)
        csv_path = os.path.join(output_dir, f"{file_prefix}shap_global_importance.csv")
        global_importance.to_csv(csv_path, index=False)
        print(f"Saved: {csv_path}")

    return shap_pos, X_shap, global_importance




def top_contributors(shap_values, X_shap, positions, top_features=8) -> pd.DataFrame:
    """
    Long table of the largest |SHAP| contributions for the rows at `positions`.

    One block of `top_features` lines per row, rows in the order given and
    features by decreasing |SHAP| (ties keep column order).
    """
    positions = np.asarray(positions, dtype=int)
    shap_rows = np.asarray(shap_values)[positions]
    n_feat = min(top_features, shap_rows.shape[1])

    order = np.argsort(-np.abs(shap_rows), axis=1, kind="stable")[:, :n_feat]
    values = X_shap.to_numpy()[positions]

    return pd.DataFrame({
        "row_id": np.repeat(X_shap.index[positions], n_feat),
        "feature": np.asarray(X_shap.columns)[order].ravel(),
        "value": np.take_along_axis(values, order, axis=1).ravel(),
        "shap": np.take_along_axis(shap_rows, order, axis=1).ravel(),
    })


def compute_shap_local(
    model, X_shap, shap_values, threshold, top_k=5, top_features=8,
    save_artifacts=False, output_dir=".", file_prefix="",
):
    """
    Local explanations for the highest-risk rows predicted positive.

    Args:
        model: Pre-trained classifier (for probability).
        X_shap (pd.DataFrame): Data used for SHAP (must match rows of shap_values).
        shap_values (np.array): SHAP matrix (N, M).
        threshold (float): Decision threshold.
        top_k (int): Number of high-risk rows to explain.
        top_features (int): Contributors listed per row.

    Returns:
        pd.DataFrame: row_id, proba, feature, value, shap (empty if no row reaches the threshold).
    """
    proba = np.asarray(positive_scores(model, X_shap), dtype=float)

    by_risk = np.argsort(-proba, kind="stable")
    positions = by_risk[proba[by_risk] >= threshold][:top_k]

    if len(positions) == 0:
        print("[SHAP] No samples found above threshold for local explanation.")
        return pd.DataFrame(columns=["row_id", "proba", "feature", "value", "shap"])

    local_explanations = top_contributors(shap_values, X_shap, positions, top_features)
    n_feat = len(local_explanations) // len(positions)
    local_explanations.insert(1, "proba", np.repeat(proba[positions], n_feat))

    if save_artifacts:
        os.makedirs(output_dir, exist_ok=True)
        outpath = os.path.join(output_dir, f"{file_prefix}shap_local_top_contributors.csv")
        local_explanations.to_csv(outpath, index=False)
        print(f"Saved: {outpath}")

    return local_explanations
