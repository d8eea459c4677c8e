import numpy as np
import pandas as pd
import pytest

from labscope.errors import InsufficientDataError, InvalidParameterError
from labscope.novelty import (flag_out_of_distribution, ood_threshold,
                              percentile_rank, percentile_ranks)

REFS = [3.0, 1.0, 4.0, 2.0]


def test_rank_boundaries():
    assert percentile_rank(REFS, max(REFS)) == 1.0
    assert percentile_rank(REFS, 0.5) == 0.0
    assert percentile_rank(REFS, 100.0) == 1.0


def test_ties_count_as_less_or_equal():
    assert percentile_rank(REFS, 2.0) == 0.5
    assert percentile_rank(REFS, 2.5) == 0.5
    assert percentile_rank([1.0, 1.0, 1.0, 5.0], 1.0) == 0.75


def test_rank_is_monotonic():
    rng = np.random.default_rng(1)
    refs = rng.exponential(size=200)
    grid = np.linspace(-1, 10, 500)
    ranks = [percentile_rank(refs, s) for s in grid]
    assert all(a <= b for a, b in zip(ranks, ranks[1:]))


def test_vectorised_ranks_match_scalar():
    scores = pd.Series([0.0, 2.0, 3.5, 9.0], index=list("abcd"))
    ranks = percentile_ranks(REFS, scores)
    assert list(ranks.index) == list("abcd")
    assert list(ranks.values) == [percentile_rank(REFS, s) for s in scores]
    assert isinstance(percentile_ranks(REFS, [1.0, 2.0]), np.ndarray)


def test_invalid_inputs():
    with pytest.raises(InsufficientDataError):
        percentile_rank([], 1.0)
    with pytest.raises(InvalidParameterError):
        percentile_rank([1.0, np.nan], 1.0)
    with pytest.raises(InvalidParameterError):
        percentile_rank(REFS, float("nan"))


def test_flag_out_of_distribution():
    refs = np.arange(1, 101, dtype=float)
    assert ood_threshold(refs, 0.99) == pytest.approx(99.01)

    flags = flag_out_of_distribution(refs, pd.Series([50.0, 99.5, 150.0], index=["a", "b", "c"]))
    assert flags.tolist() == [False, True, True]
    assert list(flags.index) == ["a", "b", "c"]

    assert not flag_out_of_distribution(refs, [100.0], percentile=1.0).iloc[0]


@pytest.mark.parametrize("pct", [0.0, -0.1, 1.5])
def test_flag_rejects_bad_percentile(pct):
    with pytest.raises(InvalidParameterError):
        flag_out_of_distribution([1.0, 2.0], [1.0], percentile=pct)
