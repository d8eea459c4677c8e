import numpy as np
import pandas as pd

from labscope.config import DEFAULT_OOD_PERCENTILE
from labscope.errors import InsufficientDataError, InvalidParameterError


def _sorted_reference(reference_self_scores) -> np.ndarray:
    refs = np.asarray(reference_self_scores, dtype=float).ravel()
    if refs.size == 0:
        raise InsufficientDataError("Reference self-scores are empty.")
    if not np.all(np.isfinite(refs)):
        raise InvalidParameterError("Reference self-scores contain NaN or infinite values.")
    return np.sort(refs)


def percentile_rank(reference_self_scores, query_score: float) -> float:
    """
    Fraction of reference self-scores less than or equal to `query_score`.

    Ties count as <=, so the largest reference score itself ranks 1.0 and any
    score below all references ranks 0.0.
    """
    refs = _sorted_reference(reference_self_scores)
    score = float(query_score)
    if np.isnan(score):
        raise InvalidParameterError("query_score is NaN.")
    return float(np.searchsorted(refs, score, side="right") / refs.size)


def percentile_ranks(reference_self_scores, scores):
    """Vectorised `percentile_rank`; keeps the index when `scores` is a Series."""
    refs = _sorted_reference(reference_self_scores)
    values = np.asarray(scores, dtype=float).ravel()
    if np.isnan(values).any():
        raise InvalidParameterError("scores contain NaN.")

    ranks = np.searchsorted(refs, values, side="right") / refs.size
    if isinstance(scores, pd.Series):
        return pd.Series(ranks, index=scores.index, name="percentile_rank")
    return ranks


def ood_threshold(reference_self_scores, percentile: float = DEFAULT_OOD_PERCENTILE) -> float:
    """Reference self-score quantile used as the out-of-distribution cut-off."""
    if not 0.0 < percentile <= 1.0:
        raise InvalidParameterError(f"percentile must be in (0, 1], got {percentile}.")
    refs = _sorted_reference(reference_self_scores)
    return float(np.quantile(refs, percentile))


def flag_out_of_distribution(
    reference_self_scores, scores, percentile: float = DEFAULT_OOD_PERCENTILE
) -> pd.Series:
    """
    Flags scores strictly above the reference `percentile` quantile.

    Returns:
        pd.Series of bool (True = out-of-distribution), indexed like `scores`
        when it is a Series.
    """
    threshold = ood_threshold(reference_self_scores, percentile)
    index = scores.index if isinstance(scores, pd.Series) else None
    values = np.asarray(scores, dtype=float).ravel()
    return pd.Series(values > threshold, index=index, name="is_ood")
