import numpy as np
import pandas as pd
from sklearn.inspection import partial_dependence

from labscope.config import RANDOM_STATE


def compute_pdp_ice(model, X, feature, grid_resolution=20, subsample=2000, random_state=RANDOM_STATE):
    """
    Partial dependence (average) and ICE (per row) curves for one feature.

    Args:
        model: Pre-trained classifier with predict_proba.
        X (pd.DataFrame): Data the curves are averaged over.
        feature (str): Feature name.
        grid_resolution (int): Number of grid points.
        subsample (int): Max rows kept for ICE curves.

    Returns:
        tuple: (pdp DataFrame [grid, average], ice DataFrame rows x grid)
    """
    if feature not in X.columns:
        raise KeyError(f"Feature '{feature}' not in X")

    if len(X) > subsample:
        rng = np.random.RandomState(random_state)
        X = X.iloc[np.sort(rng.choice(len(X), size=subsample, replace=False))]

    result = partial_dependence(
        model,
        X,
        [feature],
        kind="both",
        grid_resolution=grid_resolution,
        response_method="auto",
    )
    grid = np.asarray(result["grid_values"][0])
    average = np.asarray(result["average"])[0]
    individual = np.asarray(result["individual"])[0]

    pdp = pd.DataFrame({feature: grid, "average": average})
    ice = pd.DataFrame(individual, index=X.index, columns=grid)
    return pdp, ice


def pdp_table(model, X, features, grid_resolution=20):
    """
    Long-format partial dependence for several features (feature, value, average).

    Features are processed in the order given (usually top SHAP importance).
    """
    if not features:
        print("[PDP] No features provided for PDP.")
        return pd.DataFrame(columns=["feature", "value", "average"])

    print(f"[PDP] Computing partial dependence for {len(features)} features...")
    tables = []
    for f in features:
        pdp, _ = compute_pdp_ice(model, X, f, grid_resolution=grid_resolution)
        tables.append(pd.DataFrame({"feature": f, "value": pdp[f].values, "average": pdp["average"].values}))
    return pd.concat(tables, ignore_index=True)
