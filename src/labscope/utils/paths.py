from pathlib import Path
import os

_PACKAGE_DIR = Path(__file__).resolve().parents[1]


def project_root() -> Path:
    """Closest ancestor of the package holding pyproject.toml, else the working directory."""
    for candidate in _PACKAGE_DIR.parents:
        if (candidate / "pyproject.toml").exists():
            return candidate
    return Path.cwd()

def artifacts_dir() -> Path:
    """Return the artifacts root (override with LABSCOPE_ARTIFACTS env var)."""
    env = os.getenv("LABSCOPE_ARTIFACTS")
    return Path(env) if env else project_root() / "artifacts"

def models_dir() -> Path:
    """Path to persisted fitted reference / projection models."""
    return artifacts_dir() / "models"
