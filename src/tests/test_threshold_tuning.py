import numpy as np
import pandas as pd
import pytest

from labscope.errors import InvalidParameterError
from labscope.metrics.classification import (compare_metrics, curve_summary,
                                             metrics_at_threshold)
from labscope.metrics.cost import binary_cost, confusion_cost_table
from labscope.modelling.classifier import positive_scores
from labscope.modelling.threshold_tuning import (best_threshold_by_cost,
                                                 best_threshold_by_fbeta,
                                                 default_threshold_grid,
                                                 threshold_for_sensitivity,
                                                 threshold_sweep,
                                                 tune_threshold,
                                                 youden_threshold)

Y = np.array([0, 0, 0, 1])
PROB = np.array([0.1, 0.2, 0.6, 0.9])


class FixedProbaModel:
    """Stands in for a pre-trained classifier: returns the stored probabilities."""
    def __init__(self, prob):
        self.prob = np.asarray(prob)

    def predict_proba(self, X):
        return np.column_stack([1 - self.prob, self.prob])


class MarginModel:
    def __init__(self, margin):
        self.margin = np.asarray(margin, dtype=float)

    def decision_function(self, X):
        return self.margin


def test_metrics_at_threshold():
    m = metrics_at_threshold(Y, PROB, 0.5)
    assert (m["TP"], m["FP"], m["TN"], m["FN"]) == (1, 1, 2, 0)
    assert m["Recall_pos"] == 1.0
    assert m["Precision_pos"] == 0.5
    assert m["Specificity"] == pytest.approx(2 / 3)
    assert m["Cost"] == 10.0
    assert m["AUC"] == 1.0
    assert m["AveragePrecision"] == 1.0
    assert m["Prevalence"] == 0.25


def test_single_class_metrics_are_nan_not_errors():
    m = metrics_at_threshold([0, 0, 0], [0.1, 0.7, 0.2], 0.5)
    assert np.isnan(m["AUC"])
    assert m["FP"] == 1


def test_metric_input_validation():
    with pytest.raises(ValueError):
        metrics_at_threshold([0, 2], [0.1, 0.2])
    with pytest.raises(ValueError):
        metrics_at_threshold([0, 1, 1], [0.1, 0.2])


def test_curve_summary_tables():
    curves = curve_summary(Y, PROB)
    assert {"threshold", "fpr", "tpr"} <= set(curves["roc"].columns)
    assert curves["roc"]["tpr"].iloc[-1] == 1.0
    assert len(curves["pr"]) == len(curves["pr"].dropna()) + 1
    with pytest.raises(ValueError):
        curve_summary([1, 1], [0.2, 0.3])


def test_compare_metrics_rows():
    table = compare_metrics(Y, PROB, [0.5, 0.7])
    assert table["threshold"].tolist() == [0.5, 0.7]
    assert table["Cost"].tolist() == [10.0, 0.0]


def test_binary_cost():
    assert binary_cost([0, 1, 1], [1, 0, 1], cost_fp=10, cost_fn=500) == 510.0
    table = confusion_cost_table([0, 1, 1], [1, 0, 1], cost_fp=10, cost_fn=500)
    assert table[("total", 1)].loc[0] == 10.0
    assert table[("total", 0)].loc[1] == 500.0
    with pytest.raises(ValueError):
        binary_cost([0, 1], [1])


def test_default_grid_is_dense_near_zero():
    grid = default_threshold_grid()
    assert grid[0] == 0.0
    assert np.all(np.diff(grid) > 0)
    assert (grid <= 0.1).sum() > (grid > 0.8).sum()


def test_threshold_sweep_counts():
    sweep = threshold_sweep(Y, PROB, thresholds=[0.0, 0.5, 1.0])
    assert sweep["cost"].tolist() == [30, 10, 500]
    assert sweep["FN"].tolist() == [0, 0, 1]
    assert sweep.loc[2, "precision"] == 0.0
    assert isinstance(sweep, pd.DataFrame)


def test_best_threshold_by_cost():
    thr, cost = best_threshold_by_cost(Y, PROB, thresholds=[0.0, 0.5, 1.0])
    assert (thr, cost) == (0.5, 10.0)

    thr, cost = best_threshold_by_cost(Y, PROB)
    assert cost == 0.0
    assert 0.6 < thr <= 0.9


def test_best_threshold_by_fbeta():
    thr, f1 = best_threshold_by_fbeta(Y, PROB)
    assert f1 == pytest.approx(1.0)
    assert 0.6 < thr <= 0.9
    with pytest.raises(InvalidParameterError):
        best_threshold_by_fbeta(Y, PROB, beta=0)


def test_youden_and_sensitivity_thresholds():
    thr, j = youden_threshold(Y, PROB)
    assert thr == pytest.approx(0.9)
    assert j == pytest.approx(1.0)

    thr, sens = threshold_for_sensitivity(Y, PROB, target=1.0)
    assert thr == pytest.approx(0.9)
    assert sens == 1.0
    with pytest.raises(InvalidParameterError):
        threshold_for_sensitivity(Y, PROB, target=0.0)


def test_sensitivity_threshold_keeps_collinear_roc_points():
    # Every positive outranks the negative, so the ROC runs straight up the
    # tpr axis; the half-sensitivity cut-off must not be skipped.
    thr, sens = threshold_for_sensitivity([1, 1, 1, 1, 0], [0.9, 0.8, 0.7, 0.6, 0.1], target=0.5)
    assert thr == pytest.approx(0.8)
    assert sens == pytest.approx(0.5)


def test_tune_threshold_strategies():
    model = FixedProbaModel(PROB)
    X = np.zeros((4, 2))
    for strategy in ("cost", "f1", "youden", "sensitivity"):
        thr, metrics = tune_threshold(model, X, Y, strategy=strategy, verbose=False)
        assert metrics["Recall_pos"] == 1.0
        assert metrics["FP"] == 0.0
    with pytest.raises(InvalidParameterError):
        tune_threshold(model, X, Y, strategy="accuracy")


def test_positive_scores_adapter():
    assert positive_scores(FixedProbaModel(PROB), None).tolist() == PROB.tolist()
    np.testing.assert_allclose(positive_scores(MarginModel([-2.0, 0.0, 2.0]), None), [0.0, 0.5, 1.0])
    assert positive_scores(MarginModel([3.0, 3.0]), None).tolist() == [0.5, 0.5]
