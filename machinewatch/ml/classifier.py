"""
classifier.py — Risk Score, Severity and Factor Attribution
============================================================

Turns a reconstruction error into what an operator sees:

    risk_score = min(100, round(mse × 500))

    severity   mse ≤ 0.1        → low
               0.1 < mse ≤ 0.2  → medium
               mse > 0.2        → high
    ("critical" is never produced from a single sample; it is reserved for
     escalation by whoever aggregates records.)

    factors    up to three channels with the largest squared error, keeping
               only those above 0.05; ["unusual pattern detected"] if none.

Also hosts the self-supervised metric procedure reported after training.
Without labelled faults there is no real ground truth, so the procedure
labels the top 10 % highest-error validation samples as "positives" and
checks how many of them exceed the adaptive threshold (mean + 2·std).
The threshold and the labels both come from the same error distribution,
so the resulting accuracy / precision / recall / F1 are a DIAGNOSTIC of
how separated the error tail is, not a measure of fault-detection
accuracy.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import numpy as np
from sklearn.metrics import accuracy_score, f1_score, precision_score, recall_score

from . import config
from .scoring import adaptive_threshold
from .schemas import AnomalyRecord

logger = logging.getLogger("ml.classifier")


@dataclass(frozen=True)
class Classification:
    risk_score: int
    severity: str
    factors: list[str]


def risk_score(mse: float) -> int:
    """min(100, round(mse × RISK_SCALE)), rounding halves up."""
    return int(min(100, math.floor(mse * config.RISK_SCALE + 0.5)))


def severity_for(mse: float) -> str:
    """Severity tier for a raw reconstruction MSE."""
    if mse <= config.SEVERITY_LOW_MAX:
        return "low"
    if mse <= config.SEVERITY_MEDIUM_MAX:
        return "medium"
    return "high"


def contributing_factors(squared_errors) -> list[str]:
    """Channels driving the error, worst first."""
    errors = np.asarray(squared_errors, dtype=np.float64)
    ranked = sorted(
        zip(config.CHANNELS, errors), key=lambda item: item[1], reverse=True
    )[:config.MAX_FACTORS]
    factors = [name for name, err in ranked if err > config.FACTOR_ERROR_THRESHOLD]
    return factors or [config.DEFAULT_FACTOR]


class AnomalyClassifier:
    """Deterministic mapping from reconstruction error to record fields."""

    def classify(self, reconstruction_error: float, squared_errors) -> Classification:
        return Classification(
            risk_score=risk_score(reconstruction_error),
            severity=severity_for(reconstruction_error),
            factors=contributing_factors(squared_errors),
        )

    def build_record(self,
                     reconstruction_error: float,
                     squared_errors,
                     machine_id: str,
                     timestamp: datetime = None,
                     raw_data: dict = None,
                     prediction=None) -> AnomalyRecord:
        """Classify a sample and wrap it in an AnomalyRecord."""
        result = self.classify(reconstruction_error, squared_errors)
        record = AnomalyRecord(
            id=f"anomaly-{uuid.uuid4().hex[:12]}",
            timestamp=timestamp or datetime.now(timezone.utc),
            machine_id=machine_id,
            risk_score=result.risk_score,
            reconstruction_error=float(reconstruction_error),
            severity=result.severity,
            factors=result.factors,
            raw_data=dict(raw_data or {}),
            prediction=[float(v) for v in (prediction if prediction is not None else [])],
        )
        if record.severity == "high":
            logger.warning(f"High-severity sample on {machine_id}: "
                           f"mse={reconstruction_error:.4f} factors={record.factors}")
        else:
            logger.debug(f"Classified {machine_id}: mse={reconstruction_error:.4f} "
                         f"severity={record.severity}")
        return record


def self_supervised_metrics(mse, threshold: float = None) -> dict:
    """
    Diagnostic accuracy / precision / recall / F1 on a 0–100 scale.

    Synthetic positives: the top SYNTHETIC_POSITIVE_RATIO (at least one)
    highest-error samples.  Predictions: mse > threshold, where threshold
    defaults to the adaptive threshold of the same errors.

    Args:
        mse: 1-D array of per-sample reconstruction errors.
        threshold: Override for the prediction threshold.

    Returns:
        Dict with accuracy, precision, recall, f1Score.
    """
    mse = np.asarray(mse, dtype=np.float64).reshape(-1)
    n = mse.size
    if n == 0:
        return {"accuracy": 0.0, "precision": 0.0, "recall": 0.0, "f1Score": 0.0}

    k = max(1, int(math.ceil(n * config.SYNTHETIC_POSITIVE_RATIO)))
    y_true = np.zeros(n, dtype=int)
    y_true[np.argsort(-mse, kind="stable")[:k]] = 1

    if threshold is None:
        threshold = adaptive_threshold(mse)
    y_pred = (mse > threshold).astype(int)

    metrics = {
        "accuracy": accuracy_score(y_true, y_pred),
        "precision": precision_score(y_true, y_pred, zero_division=0),
        "recall": recall_score(y_true, y_pred, zero_division=0),
        "f1Score": f1_score(y_true, y_pred, zero_division=0),
    }
    metrics = {name: round(float(value) * 100, 2) for name, value in metrics.items()}
    logger.info(f"Self-supervised diagnostic metrics (not ground truth): {metrics}")
    return metrics
