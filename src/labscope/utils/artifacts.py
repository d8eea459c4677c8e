from pathlib import Path
from typing import Optional, Union

import joblib

from labscope.utils.paths import models_dir


def save_model(model, name: str, output_dir: Optional[Union[str, Path]] = None) -> Path:
    """
    Persists a fitted model (ReferenceModel, ProjectionModel, index wrapper) with joblib.

    Returns:
        Path of the written file (<output_dir>/<name>.joblib).
    """
    out = Path(output_dir) if output_dir is not None else models_dir()
    out.mkdir(parents=True, exist_ok=True)
    path = out / f"{name}.joblib"
    joblib.dump(model, path)
    print(f"Artifacts saved: {path}")
    return path


def load_model(name_or_path: Union[str, Path], output_dir: Optional[Union[str, Path]] = None):
    """Loads a model saved by `save_model`, by file path or by name."""
    path = Path(name_or_path)
    if path.suffix != ".joblib":
        base = Path(output_dir) if output_dir is not None else models_dir()
        path = base / f"{name_or_path}.joblib"
    if not path.exists():
        raise FileNotFoundError(f"No saved model at {path}")
    return joblib.load(path)
