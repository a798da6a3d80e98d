"""
Behaviour Classifier Adapter — thin wrapper around the camera and the
external pose classification model.

Pipeline per call:
  1. Grab one frame from the webcam (OpenCV)
  2. Extract 33 pose landmarks with MediaPipe Pose
  3. Feed the flattened landmark vector to the joblib classifier
  4. Return a ranked ClassificationSample

When the model, MediaPipe or the camera is unavailable ``open_classifier``
raises ClassifierUnavailable and the monitor falls back to
SimulatedClassifier, which produces "Normal" most of the time so the rest of
the exam keeps working.
"""
from __future__ import annotations

import logging
import random
from typing import Any, Protocol

import numpy as np

from edu_service.config import Settings, get_settings
from edu_service.errors import ClassifierUnavailable
from edu_service.ml.model_loader import LoadedModels, get_models
from edu_service.proctoring.labels import NORMAL, LabelTable
from edu_service.proctoring.sample import ClassificationSample

logger = logging.getLogger(__name__)

N_LANDMARKS = 33
FEATURES_PER_LANDMARK = 4          # x, y, z, visibility
NO_PERSON_LABEL = "No Person"

# behaviours the simulated classifier can emit besides Normal
SIMULATED_ABNORMAL = ("Looking Away", "Using Phone", "Talking", "Head Down")


class BehaviorClassifier(Protocol):
    simulated: bool

    def classify(self) -> ClassificationSample: ...

    def close(self) -> None: ...


# ── Camera ────────────────────────────────────────────────────────────────────

class Camera:
    """
    Scoped webcam handle.  ``release()`` is idempotent and also runs on
    context-manager exit, so every exit path frees the device.
    """

    def __init__(self, index: int = 0, size: int = 200, flip: bool = True) -> None:
        import cv2
        self._cv2  = cv2
        self.size  = size
        self.flip  = flip
        self._cap  = cv2.VideoCapture(index)
        if not self._cap.isOpened():
            self._cap.release()
            self._cap = None
            raise ClassifierUnavailable(f"cannot open camera {index}")
        logger.info("Camera %d opened", index)

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def read(self) -> np.ndarray:
        if self._cap is None:
            raise ClassifierUnavailable("camera released")
        ok, frame = self._cap.read()
        if not ok or frame is None:
            raise ClassifierUnavailable("camera returned no frame")
        frame = self._cv2.resize(frame, (self.size, self.size))
        if self.flip:
            frame = self._cv2.flip(frame, 1)
        return frame

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera released")

    def __enter__(self) -> "Camera":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.release()


# ── Real classifier ───────────────────────────────────────────────────────────

def landmarks_to_features(landmarks: Any) -> np.ndarray:
    """Flatten MediaPipe pose landmarks into a (1, 132) float32 vector."""
    values: list[float] = []
    for lm in landmarks.landmark:
        values.extend((lm.x, lm.y, lm.z, lm.visibility))
    return np.array([values], dtype=np.float32)


def unpack_artifact(artifact: Any) -> tuple[Any, list[str]]:
    """
    Accepts either ``{"model": estimator, "labels": [...]}`` as written by
    scripts/train_model.py or a bare estimator whose ``classes_`` are the labels.
    """
    if isinstance(artifact, dict):
        return artifact["model"], [str(label) for label in artifact["labels"]]
    return artifact, [str(c) for c in artifact.classes_]


class PoseClassifier:
    """Camera + MediaPipe Pose + joblib model."""

    simulated = False

    def __init__(self, camera: Camera, artifact: Any) -> None:
        import mediapipe as mp
        self.camera = camera
        self.model, self.labels = unpack_artifact(artifact)
        self._pose  = mp.solutions.pose.Pose(
            static_image_mode=False,
            model_complexity=0,
            min_detection_confidence=0.5,
        )

    def classify(self) -> ClassificationSample:
        frame = self.camera.read()
        # MediaPipe expects RGB
        results = self._pose.process(frame[:, :, ::-1])
        if results.pose_landmarks is None:
            return ClassificationSample.single(NO_PERSON_LABEL, 1.0)

        features = landmarks_to_features(results.pose_landmarks)
        proba    = self.model.predict_proba(features)[0]
        ranked   = sorted(zip(self.labels, (float(p) for p in proba)),
                          key=lambda p: p[1], reverse=True)
        return ClassificationSample(predictions=ranked)

    def close(self) -> None:
        try:
            self._pose.close()
        except Exception as exc:
            logger.debug("MediaPipe pose close failed: %s", exc)
        self.camera.release()


# ── Simulated fallback ────────────────────────────────────────────────────────

class SimulatedClassifier:
    """
    Lower-fidelity stand-in used only when the real classifier cannot be
    reached.  Emits "Normal" with probability ``1 - violation_probability``.
    """

    simulated = True

    def __init__(
        self,
        labels: LabelTable,
        violation_probability: float = 0.10,
        rng: random.Random | None = None,
    ) -> None:
        if not 0.0 <= violation_probability <= 1.0:
            raise ValueError("violation_probability must be within [0, 1]")
        self.violation_probability = violation_probability
        self._abnormal = ([l for l in SIMULATED_ABNORMAL if not labels.is_normal(l)]
                          or list(SIMULATED_ABNORMAL))
        self._rng = rng or random.Random()

    def classify(self) -> ClassificationSample:
        if self._rng.random() < self.violation_probability:
            label = self._rng.choice(self._abnormal)
        else:
            label = NORMAL
        return ClassificationSample.single(label, 0.95, simulated=True)

    def close(self) -> None:
        pass


def open_classifier(
    settings: Settings | None = None,
    models: LoadedModels | None = None,
) -> PoseClassifier:
    """
    Build the real classifier, acquiring the camera.  Raises
    ClassifierUnavailable when any piece is missing; the camera is released
    again if a later step fails.
    """
    settings = settings or get_settings()
    models   = models or get_models()

    if not models.classifier_ready or models.pose_classifier is None:
        raise ClassifierUnavailable(f"pose classifier not ready: {models.status}")

    try:
        camera = Camera(settings.camera_index, settings.frame_size)
    except ClassifierUnavailable:
        raise
    except Exception as exc:
        raise ClassifierUnavailable(f"camera init failed: {exc}") from exc

    try:
        return PoseClassifier(camera, models.pose_classifier)
    except Exception as exc:
        camera.release()
        raise ClassifierUnavailable(f"pose pipeline init failed: {exc}") from exc
