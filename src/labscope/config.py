# Misclassification costs used by the threshold notebooks (missed positive >> false alarm).
DEFAULT_COST_FP = 10
DEFAULT_COST_FN = 500

RANDOM_STATE = 42

# Reference self-score quantile above which a row is treated as out-of-distribution.
DEFAULT_OOD_PERCENTILE = 0.99

# Rows per joblib task when scoring in parallel.
SCORING_CHUNK_SIZE = 2048

# Covariance eigenvalues below this fraction of the largest are treated as zero (singular).
SINGULAR_RCOND = 1e-12
