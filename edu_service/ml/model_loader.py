"""
Central model loader — loads the pose behaviour classifier once at startup
and stores it as a module-level singleton shared by every exam session
(read-only inference).

Usage:
    from edu_service.ml.model_loader import get_models
    models = get_models()
    models.pose_classifier  # sklearn-style estimator or None
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class LoadedModels:
    pose_classifier: Any = None     # estimator with predict_proba() + classes_
    mediapipe_available: bool = False

    # Readiness flags
    pose_classifier_loaded: bool = False

    @property
    def classifier_ready(self) -> bool:
        """Both halves of the pipeline are usable."""
        return self.pose_classifier_loaded and self.mediapipe_available

    status: dict = field(default_factory=dict)


_models: LoadedModels | None = None


def load_all_models(pose_model_path: str = "models/pose_classifier.pkl") -> LoadedModels:
    """
    Load the joblib pose classifier and check MediaPipe.
    Failures are non-fatal — sessions degrade to simulated monitoring.
    """
    global _models
    m = LoadedModels()

    # ── Pose behaviour classifier ────────────────────────────────
    try:
        import joblib
        if Path(pose_model_path).exists():
            m.pose_classifier = joblib.load(pose_model_path)
            m.pose_classifier_loaded = True
            logger.info("Pose classifier loaded from %s", pose_model_path)
        else:
            logger.warning(
                "Pose classifier not found at %s — proctoring will run in simulation mode",
                pose_model_path,
            )
            m.status["pose_classifier"] = "model file missing"
    except Exception as exc:
        logger.warning("Pose classifier load failed (simulation fallback): %s", exc)
        m.status["pose_classifier"] = str(exc)

    # ── MediaPipe ────────────────────────────────────────────────
    try:
        import mediapipe  # noqa: F401
        m.mediapipe_available = True
        logger.info("MediaPipe loaded successfully")
    except ImportError as exc:
        logger.warning("MediaPipe not available (pose landmarks disabled): %s", exc)
        m.status["mediapipe"] = str(exc)

    _models = m
    return m


def get_models() -> LoadedModels:
    """Return the globally loaded models. Call load_all_models() first."""
    global _models
    if _models is None:
        _models = LoadedModels()
    return _models


# ── Convenience aliases ───────────────────────────────────────────────────────
load_models = load_all_models          # used by main.py
