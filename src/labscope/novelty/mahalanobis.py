from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.stats import chi2

from labscope.config import SCORING_CHUNK_SIZE, SINGULAR_RCOND
from labscope.data.matrix import as_feature_frame, impute_with_mean
from labscope.errors import InsufficientDataError, InvalidParameterError
from labscope.novelty.percentile import percentile_ranks


@dataclass(frozen=True)
class ReferenceModel:
    """
    Fitted reference statistics for Mahalanobis scoring.

    `self_scores` holds the squared distance of every reference row against
    this model; percentile ranks are taken against it. Every array is read-only
    and ordered like `columns`.
    """
    columns: Tuple[str, ...]
    mean: np.ndarray
    covariance: np.ndarray
    precision: np.ndarray
    self_scores: np.ndarray
    n_samples: int
    pseudo_inverse: bool = False
    ridge: float = 0.0

    @property
    def n_features(self) -> int:
        return len(self.columns)


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, dtype=float, copy=True)
    a.setflags(write=False)
    return a


def _invert_covariance(cov: np.ndarray, allow_pinv: bool) -> Tuple[np.ndarray, bool]:
    """
    Inverts a symmetric covariance matrix.

    Singular matrices raise unless `allow_pinv`, in which case the Moore-Penrose
    pseudo-inverse is returned. Indefinite matrices (possible with pairwise-complete
    estimates) always raise.
    """
    eig, vecs = np.linalg.eigh(cov)
    tol = abs(eig).max() * SINGULAR_RCOND

    if eig.min() < -tol:
        raise InsufficientDataError(
            f"Covariance is not positive semi-definite (min eigenvalue {eig.min():.3g}). "
            "Too few overlapping rows between columns with missing values."
        )
    if eig.min() <= tol:
        if not allow_pinv:
            raise InsufficientDataError(
                f"Covariance is singular (min eigenvalue {eig.min():.3g}); "
                "columns are linearly dependent. Pass allow_pinv=True to use the pseudo-inverse."
            )
        # Pseudo-inverse from the eigendecomposition, dropping the null directions.
        keep = eig > tol
        inv_eig = np.zeros_like(eig)
        inv_eig[keep] = 1.0 / eig[keep]
        return (vecs * inv_eig) @ vecs.T, True

    return np.linalg.inv(cov), False


def _quadratic_form(diff: np.ndarray, precision: np.ndarray) -> np.ndarray:
    # Row-wise (x - mu)^T P (x - mu); einsum keeps each row independent of its neighbours.
    return np.einsum("ij,jk,ik->i", diff, precision, diff)


def _chunked_quadratic_form(
    diff: np.ndarray, precision: np.ndarray, n_jobs: int = 1
) -> np.ndarray:
    """
    Evaluates the quadratic form over fixed-size row chunks.

    The chunking is the same whatever `n_jobs` is, so the parallel path gives the
    exact same floats as the serial one. Output order follows input order.
    """
    if len(diff) == 0:
        return np.empty(0, dtype=float)

    chunks = [
        np.ascontiguousarray(diff[start:start + SCORING_CHUNK_SIZE])
        for start in range(0, len(diff), SCORING_CHUNK_SIZE)
    ]
    if n_jobs == 1 or len(chunks) == 1:
        parts = [_quadratic_form(c, precision) for c in chunks]
    else:
        parts = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_quadratic_form)(c, precision) for c in chunks
        )
    return np.maximum(np.concatenate(parts), 0.0)


def fit_reference(
    reference_matrix,
    *,
    allow_pinv: bool = False,
    ridge: float = 0.0,
    verbose: bool = False,
) -> ReferenceModel:
    """
    Fits the reference distribution used by `score_mahalanobis`.

    Mean ignores absent values per column. Covariance is pairwise-complete:
    each entry uses only rows where both columns are present (ddof=1).

    Args:
        reference_matrix: Reference (training) feature matrix.
        allow_pinv: Use the pseudo-inverse instead of failing on a singular covariance.
        ridge: Optional value added to the covariance diagonal before inversion.
        verbose: Print a fit summary.

    Returns:
        ReferenceModel

    Raises:
        InsufficientDataError: fewer rows than columns + 1, a constant or empty
            column, or a singular / indefinite covariance.
    """
    df = as_feature_frame(reference_matrix)
    n_rows, n_cols = df.shape

    if n_rows < n_cols + 1:
        raise InsufficientDataError(
            f"Reference has {n_rows} rows for {n_cols} columns; "
            f"need at least {n_cols + 1} to estimate a covariance."
        )
    if ridge < 0:
        raise InvalidParameterError(f"ridge must be non-negative, got {ridge}.")

    constant_cols = df.columns[df.nunique(dropna=True) <= 1].tolist()
    if constant_cols:
        raise InsufficientDataError(
            f"Zero-variance (or all-absent) columns in reference: {constant_cols}"
        )

    mean = df.mean(skipna=True)
    cov = df.cov()

    if cov.isna().any().any():
        bad = sorted(set(cov.columns[cov.isna().any(axis=0)]))
        raise InsufficientDataError(
            f"Covariance undefined for columns {bad}: not enough rows where they are jointly present."
        )

    cov_values = cov.values + ridge * np.eye(n_cols)
    precision, used_pinv = _invert_covariance(cov_values, allow_pinv)

    imputed = impute_with_mean(df, mean)
    self_scores = _chunked_quadratic_form(imputed.values - mean.values, precision)

    if verbose:
        n_missing = int(df.isna().sum().sum())
        print(
            f"[Mahalanobis] Fitted reference: {n_rows} rows x {n_cols} features "
            f"({n_missing} absent values imputed by mean)"
            + (" | pseudo-inverse" if used_pinv else "")
        )
        print(
            f"[Mahalanobis] Self-score median = {np.median(self_scores):.3f} | "
            f"max = {self_scores.max():.3f}"
        )

    return ReferenceModel(
        columns=tuple(df.columns),
        mean=_readonly(mean.values),
        covariance=_readonly(cov.values),
        precision=_readonly(precision),
        self_scores=_readonly(self_scores),
        n_samples=n_rows,
        pseudo_inverse=used_pinv,
        ridge=float(ridge),
    )


def score_mahalanobis(
    reference_model: ReferenceModel,
    query_matrix,
    *,
    squared: bool = True,
    n_jobs: int = 1,
) -> pd.Series:
    """
    Mahalanobis score of each query row against the reference distribution.

    The score is the quadratic form (x - mean)^T Sigma^-1 (x - mean); pass
    `squared=False` for its square root. Absent values are imputed with the
    reference mean first, so they add zero deviation on their axis and an
    all-absent row scores 0.

    Raises:
        DimensionMismatchError: query columns differ from the reference columns.
    """
    df = as_feature_frame(query_matrix, columns=reference_model.columns)
    df = impute_with_mean(df, reference_model.mean)

    diff = df.values - reference_model.mean
    scores = _chunked_quadratic_form(diff, reference_model.precision, n_jobs=n_jobs)
    if not squared:
        scores = np.sqrt(scores)

    return pd.Series(scores, index=df.index, name="mahalanobis")


def mahalanobis_pvalue(reference_model: ReferenceModel, query_matrix) -> pd.Series:
    """
    Upper-tail chi-square probability of each squared distance (df = n_features).

    Only meaningful when the reference is roughly Gaussian; small values mean atypical.
    """
    d2 = score_mahalanobis(reference_model, query_matrix, squared=True)
    return pd.Series(chi2.sf(d2.values, df=reference_model.n_features), index=d2.index, name="pvalue")


class MahalanobisIndex:
    """
    Mahalanobis distance-based novelty index.

    - fit(X_ref): estimate mean and covariance
    - score(X):  squared Mahalanobis distance to the reference distribution
    - percentile(X): rank of each score among the reference self-scores
    """
    def __init__(self, allow_pinv: bool = False, ridge: float = 0.0, n_jobs: int = 1):
        self.allow_pinv = allow_pinv
        self.ridge = ridge
        self.n_jobs = n_jobs
        self.model_: Optional[ReferenceModel] = None

    def fit(self, X_ref) -> "MahalanobisIndex":
        self.model_ = fit_reference(X_ref, allow_pinv=self.allow_pinv, ridge=self.ridge)
        return self

    def _check_fitted(self) -> ReferenceModel:
        if self.model_ is None:
            raise ValueError("MahalanobisIndex not fitted. Call fit() first.")
        return self.model_

    def score(self, X) -> np.ndarray:
        model = self._check_fitted()
        return score_mahalanobis(model, X, n_jobs=self.n_jobs).values

    def percentile(self, X) -> np.ndarray:
        model = self._check_fitted()
        return percentile_ranks(model.self_scores, self.score(X))
