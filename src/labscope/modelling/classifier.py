import os

import joblib
import numpy as np


def load_classifier(path):
    """
    Loads a pre-trained classifier artifact saved with joblib.

    The artifact is treated as a black box: it is only ever asked for scores.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Classifier artifact not found at {path}")
    model = joblib.load(path)
    if not any(hasattr(model, m) for m in ("predict_proba", "decision_function", "predict")):
        raise TypeError(f"Loaded object of type {type(model).__name__} cannot produce predictions")
    print(f"[MODEL] Loaded {type(model).__name__} from {path}")
    return model


def positive_scores(model, X) -> np.ndarray:
    """
    Return scores on [0,1] for thresholding.
    - prefer predict_proba[:,1]
    - fall back to decision_function mapped monotonically to [0,1]
    - last resort: predict() as {0,1} floats
    """
    if hasattr(model, "predict_proba"):
        s = np.asarray(model.predict_proba(X))
        if s.ndim == 2 and s.shape[1] >= 2:
            return s[:, 1].astype(float)
        return np.asarray(s, dtype=float).ravel()
    if hasattr(model, "decision_function"):
        s = np.asarray(model.decision_function(X), dtype=float).ravel()
        s_min, s_max = np.min(s), np.max(s)
        if s_max == s_min:
            return np.full_like(s, 0.5, dtype=float)
        return (s - s_min) / (s_max - s_min)
    return np.asarray(model.predict(X), dtype=float).ravel()
