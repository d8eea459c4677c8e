from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from labscope.data.matrix import as_feature_frame, impute_with_mean
from labscope.errors import InsufficientDataError, InvalidParameterError
from labscope.novelty.percentile import percentile_ranks


@dataclass(frozen=True)
class ProjectionModel:
    """
    PCA basis fitted on the reference matrix.

    components: (k, n_features) orthonormal rows, largest-magnitude loading positive.
    variance:   per-component variance of the reference scores (ddof=1).
    self_scores: residual distance of every reference row.
    mean:       read-only column means, ordered like `columns`.
    """
    columns: Tuple[str, ...]
    mean: np.ndarray
    components: np.ndarray
    variance: np.ndarray
    explained_variance_ratio: np.ndarray
    self_scores: np.ndarray
    n_samples: int

    @property
    def n_components(self) -> int:
        return self.components.shape[0]

    def loadings(self) -> pd.DataFrame:
        """Component loadings as a (feature x PC) table."""
        return pd.DataFrame(
            self.components.T,
            index=list(self.columns),
            columns=[f"PC{i + 1}" for i in range(self.n_components)],
        )


def canonical_signs(components: np.ndarray) -> np.ndarray:
    """Flips each component so that its largest-magnitude loading is positive."""
    components = np.array(components, dtype=float, copy=True)
    idx = np.argmax(np.abs(components), axis=1)
    signs = np.sign(components[np.arange(len(components)), idx])
    signs[signs == 0] = 1.0
    return components * signs[:, np.newaxis]


def _validate_component_count(component_count, n_rows: int, n_cols: int) -> int:
    if isinstance(component_count, bool) or not isinstance(component_count, (int, np.integer)):
        raise InvalidParameterError(
            f"component_count must be an integer, got {type(component_count).__name__}."
        )
    upper = min(n_rows, n_cols)
    if not 1 <= component_count <= upper:
        raise InvalidParameterError(
            f"component_count must be between 1 and {upper} (min of rows, columns), got {component_count}."
        )
    return int(component_count)


def _centered(model: ProjectionModel, query_matrix) -> pd.DataFrame:
    df = as_feature_frame(query_matrix, columns=model.columns)
    df = impute_with_mean(df, model.mean)
    return df - model.mean


def _residual_norm(centered: np.ndarray, components: np.ndarray) -> np.ndarray:
    scores = centered @ components.T
    reconstruction = scores @ components
    return np.linalg.norm(centered - reconstruction, axis=1)


def fit_projection(reference_matrix, component_count: int, *, verbose: bool = False) -> ProjectionModel:
    """
    Fits a PCA basis on the mean-centred reference matrix.

    Absent values are imputed with the column mean before the decomposition,
    the same policy used at scoring time.

    Args:
        reference_matrix: Reference feature matrix.
        component_count: Number of components kept, 1 <= k <= min(rows, columns).

    Raises:
        InvalidParameterError: component_count out of range.
        InsufficientDataError: empty reference or a column with no values at all.
    """
    df = as_feature_frame(reference_matrix)
    n_rows, n_cols = df.shape
    if n_rows == 0:
        raise InsufficientDataError("Reference matrix has no rows.")
    k = _validate_component_count(component_count, n_rows, n_cols)

    mean = df.mean(skipna=True)
    empty_cols = mean.index[mean.isna()].tolist()
    if empty_cols:
        raise InsufficientDataError(f"Columns with no values in reference: {empty_cols}")

    X = impute_with_mean(df, mean).values
    centered = X - mean.values

    if n_rows == 1:
        # No spread to decompose: any orthonormal basis reconstructs the single
        # (zero) centred row, so keep the leading axes and zero variance.
        components = np.eye(n_cols)[:k]
        singular_values = np.zeros(k)
    else:
        pca = PCA(n_components=k, svd_solver="full")
        pca.fit(X)
        components = canonical_signs(pca.components_)
        singular_values = pca.singular_values_

    variance = singular_values ** 2 / max(n_rows - 1, 1)
    total_var = float(np.sum(centered ** 2)) / max(n_rows - 1, 1)
    ratio = variance / total_var if total_var > 0 else np.zeros_like(variance)

    self_scores = _residual_norm(centered, components)

    if verbose:
        print(
            f"[PCA] Fitted {k} components on {n_rows} rows x {n_cols} features | "
            f"explained variance ratio = {ratio.sum():.3f}"
        )

    mean_values = np.array(mean.values, dtype=float, copy=True)
    for a in (mean_values, components, variance, ratio, self_scores):
        a.setflags(write=False)

    return ProjectionModel(
        columns=tuple(df.columns),
        mean=mean_values,
        components=components,
        variance=variance,
        explained_variance_ratio=ratio,
        self_scores=self_scores,
        n_samples=n_rows,
    )


def project(projection_model: ProjectionModel, query_matrix) -> pd.DataFrame:
    """Coordinates of each query row in the retained basis (PC1..PCk)."""
    centered = _centered(projection_model, query_matrix)
    scores = centered.values @ projection_model.components.T
    return pd.DataFrame(
        scores,
        index=centered.index,
        columns=[f"PC{i + 1}" for i in range(projection_model.n_components)],
    )


def score_projection(projection_model: ProjectionModel, query_matrix) -> pd.Series:
    """
    Residual (out-of-plane) distance of each query row.

    Each mean-centred row is projected onto the retained components and
    reconstructed; the score is the Euclidean norm of what the basis cannot
    represent. With every component retained the residual is 0.
    """
    centered = _centered(projection_model, query_matrix)
    residual = _residual_norm(centered.values, projection_model.components)
    return pd.Series(residual, index=centered.index, name="pca_residual")


def score_in_plane(projection_model: ProjectionModel, query_matrix) -> pd.Series:
    """
    Hotelling T^2 over the retained components: sum(score_i^2 / variance_i).

    Components with zero reference variance contribute nothing.
    """
    scores = project(projection_model, query_matrix)
    var = projection_model.variance
    weights = np.divide(1.0, var, out=np.zeros_like(var), where=var > 0)
    t2 = (scores.values ** 2) @ weights
    return pd.Series(t2, index=scores.index, name="pca_t2")


class PCAIndex:
    """
    PCA-based novelty index.

    - fit(X_ref): fit the basis on the reference feature matrix
    - score(X):  residual distance of each row to the reference subspace
    - percentile(X): rank of each score among the reference self-scores
    """
    def __init__(self, n_components: int = 2):
        self.n_components = n_components
        self.model_: Optional[ProjectionModel] = None

    def fit(self, X_ref) -> "PCAIndex":
        self.model_ = fit_projection(X_ref, self.n_components)
        return self

    def _check_fitted(self) -> ProjectionModel:
        if self.model_ is None:
            raise ValueError("PCAIndex not fitted. Call fit() first.")
        return self.model_

    def score(self, X) -> np.ndarray:
        return score_projection(self._check_fitted(), X).values

    def percentile(self, X) -> np.ndarray:
        model = self._check_fitted()
        return percentile_ranks(model.self_scores, self.score(X))
