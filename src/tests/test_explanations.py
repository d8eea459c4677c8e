import numpy as np
import pandas as pd
import pytest
from sklearn.ensemble import GradientBoostingClassifier

from labscope.rca.explanation_shap import (compute_shap_global, compute_shap_local,
                                           top_contributors)
from labscope.rca.pdp_ice import compute_pdp_ice, pdp_table


@pytest.fixture(scope="module")
def fitted():
    rng = np.random.default_rng(0)
    X = pd.DataFrame({
        "crp": rng.normal(size=400),
        "hb": rng.normal(size=400),
        "plt": rng.normal(size=400),
    })
    y = (X["crp"] > 0.3).astype(int)
    model = GradientBoostingClassifier(n_estimators=30, max_depth=2, random_state=42)
    model.fit(X, y)
    return model, X


def test_shap_global_ranks_driving_feature_first(fitted, tmp_path):
    model, X = fitted
    shap_pos, X_shap, importance = compute_shap_global(
        model, X, max_rows=200, save_artifacts=True, output_dir=str(tmp_path), file_prefix="t_"
    )
    assert shap_pos.shape == (200, 3)
    assert len(X_shap) == 200
    assert importance["feature"].iloc[0] == "crp"
    assert (tmp_path / "t_shap_global_importance.csv").exists()


def test_shap_local_top_contributors(fitted):
    model, X = fitted
    shap_pos, X_shap, _ = compute_shap_global(model, X, max_rows=100)
    local = compute_shap_local(model, X_shap, shap_pos, threshold=0.5, top_k=3)
    assert list(local.columns) == ["row_id", "proba", "feature", "value", "shap"]
    assert local["row_id"].nunique() <= 3
    assert (local["proba"] >= 0.5).all()

    empty = compute_shap_local(model, X_shap, shap_pos, threshold=1.1)
    assert empty.empty


def test_top_contributors_orders_rows_and_features():
    X = pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [4.0, 5.0, 6.0], "c": [7.0, 8.0, 9.0]},
                     index=["r0", "r1", "r2"])
    shap_values = np.array([
        [0.1, -0.5, 0.2],
        [0.3, 0.3, -0.9],
        [0.0, 0.0, 0.0],
    ])
    table = top_contributors(shap_values, X, [1, 0], top_features=2)
    assert list(table["row_id"]) == ["r1", "r1", "r0", "r0"]
    assert list(table["feature"]) == ["c", "a", "b", "c"]
    np.testing.assert_allclose(table["value"], [8.0, 2.0, 4.0, 7.0])
    np.testing.assert_allclose(table["shap"], [-0.9, 0.3, -0.5, 0.2])


def test_shap_local_matches_highest_risk_rows(fitted):
    model, X = fitted
    shap_pos, X_shap, _ = compute_shap_global(model, X, max_rows=100)
    local = compute_shap_local(model, X_shap, shap_pos, threshold=0.0, top_k=2, top_features=3)
    proba = model.predict_proba(X_shap)[:, 1]
    expected_rows = X_shap.index[np.argsort(-proba, kind="stable")[:2]]
    assert list(local["row_id"].unique()) == list(expected_rows)
    assert len(local) == 6
    first = local[local["row_id"] == expected_rows[0]]
    np.testing.assert_allclose(first["proba"], proba[X_shap.index.get_loc(expected_rows[0])])
    assert (first["shap"].abs().diff().dropna() <= 0).all()


def test_pdp_increases_with_driving_feature(fitted):
    model, X = fitted
    pdp, ice = compute_pdp_ice(model, X, "crp", grid_resolution=10)
    assert list(pdp.columns) == ["crp", "average"]
    assert pdp["average"].iloc[-1] > pdp["average"].iloc[0]
    assert ice.shape == (len(X), len(pdp))
    with pytest.raises(KeyError):
        compute_pdp_ice(model, X, "missing")


def test_pdp_table_long_format(fitted):
    model, X = fitted
    table = pdp_table(model, X, ["crp", "hb"], grid_resolution=5)
    assert set(table["feature"]) == {"crp", "hb"}
    assert pdp_table(model, X, []).empty
