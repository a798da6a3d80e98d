#!/usr/bin/env python3
"""
Train (or retrain) the pose behaviour classifier.

Generates a synthetic landmark dataset, trains an XGBoostClassifier and saves
``{"model": clf, "labels": [...]}`` to models/pose_classifier.pkl.

Usage:
    python scripts/train_model.py

Feature vector (must match landmarks_to_features in proctoring/classifier.py):
    33 MediaPipe pose landmarks × (x, y, z, visibility) = 132 floats

Labels (raw classifier labels, normalized through Settings.label_map):
    Normal, Looking Left, Looking Right, Head Down, Using Phone
"""
from __future__ import annotations

import os
import sys

# Allow running from repo root or scripts/ directory
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import numpy as np
import joblib
from xgboost import XGBClassifier

from edu_service.proctoring.classifier import FEATURES_PER_LANDMARK, N_LANDMARKS

OUTPUT_PATH = os.path.join(os.path.dirname(__file__), "..", "models", "pose_classifier.pkl")
RANDOM_SEED = 42

LABELS = ["Normal", "Looking Left", "Looking Right", "Head Down", "Using Phone"]

# MediaPipe pose landmark indices
_NOSE        = 0
_LEFT_WRIST  = 15
_RIGHT_WRIST = 16


def _base_pose(rng: np.random.Generator) -> np.ndarray:
    """Seated candidate facing the camera, head near the top-centre."""
    pose = np.zeros((N_LANDMARKS, FEATURES_PER_LANDMARK), dtype=np.float32)
    pose[:, 0] = rng.normal(0.5, 0.08, N_LANDMARKS)       # x
    pose[:, 1] = np.linspace(0.30, 1.10, N_LANDMARKS)     # y, head → hips
    pose[:, 2] = rng.normal(0.0, 0.05, N_LANDMARKS)       # z
    pose[:, 3] = rng.uniform(0.6, 1.0, N_LANDMARKS)       # visibility
    pose[:11, 1] = rng.normal(0.32, 0.02, 11)             # face landmarks
    pose[:11, 0] = rng.normal(0.50, 0.02, 11)
    pose[_LEFT_WRIST, 1] = pose[_RIGHT_WRIST, 1] = 0.85   # hands on desk
    return pose


def _apply_behaviour(pose: np.ndarray, label: str, rng: np.random.Generator) -> np.ndarray:
    if label == "Looking Left":
        pose[:11, 0] -= rng.uniform(0.10, 0.20)
    elif label == "Looking Right":
        pose[:11, 0] += rng.uniform(0.10, 0.20)
    elif label == "Head Down":
        pose[:11, 1] += rng.uniform(0.15, 0.25)
    elif label == "Using Phone":
        wrist = rng.choice([_LEFT_WRIST, _RIGHT_WRIST])
        pose[wrist, 1] = pose[_NOSE, 1] + rng.uniform(0.05, 0.15)
        pose[wrist, 0] = pose[_NOSE, 0] + rng.normal(0.0, 0.05)
    return pose


def generate_dataset(n_samples: int = 2000):
    """Normal dominates (60 %), the rest split evenly across violations."""
    rng = np.random.default_rng(RANDOM_SEED)

    X_list = []
    y_list = []
    weights = [0.60] + [0.40 / (len(LABELS) - 1)] * (len(LABELS) - 1)
    for _ in range(n_samples):
        label_idx = int(rng.choice(len(LABELS), p=weights))
        pose = _apply_behaviour(_base_pose(rng), LABELS[label_idx], rng)
        X_list.append(pose.reshape(-1))
        y_list.append(label_idx)

    X = np.array(X_list, dtype=np.float32)
    y = np.array(y_list, dtype=np.int32)
    return X, y


def train():
    print("Generating synthetic training data …")
    X, y = generate_dataset(n_samples=4000)

    split = int(len(X) * 0.80)
    X_train, X_val = X[:split], X[split:]
    y_train, y_val = y[:split], y[split:]

    print(f"Training samples: {len(X_train)}  Validation samples: {len(X_val)}")

    clf = XGBClassifier(
        n_estimators    = 150,
        max_depth       = 4,
        learning_rate   = 0.1,
        subsample       = 0.8,
        colsample_bytree= 0.8,
        objective       = "multi:softprob",
        eval_metric     = "mlogloss",
        random_state    = RANDOM_SEED,
    )
    clf.fit(
        X_train, y_train,
        eval_set        = [(X_val, y_val)],
        verbose         = 50,
    )

    val_acc = (clf.predict(X_val) == y_val).mean()
    print(f"Validation accuracy: {val_acc:.3f}")

    os.makedirs(os.path.dirname(OUTPUT_PATH), exist_ok=True)
    joblib.dump({"model": clf, "labels": LABELS}, OUTPUT_PATH)
    print(f"Model saved to {OUTPUT_PATH}")


if __name__ == "__main__":
    train()
