"""
inference.py — Anomaly Detection Service
=========================================

The single entry point the dashboard / HTTP layer talks to.  Orchestrates:

    training:   readings → quality checks → normalize → fit → save
    inference:  reading → normalize → reconstruct → score → classify → record

Exposed operations:
    train_model(readings, **options)  → TrainingStatus
    predict(features, reading=None)   → AnomalyRecord
    batch_predict(readings)           → [AnomalyRecord, ...]
    evaluate_model(readings)          → {accuracy, precision, recall, f1Score}
    get_model_status()                → TrainingStatus

All model state lives in an explicit ModelHandle owned by the service
instance; nothing is kept at module level.
"""

import logging

import numpy as np

from . import config
from .classifier import AnomalyClassifier, self_supervised_metrics
from .errors import ValidationError
from .feature_engineering import FeatureNormalizer
from .records import AnomalyLog
from .schemas import AnomalyRecord, SensorReading, TrainingStatus
from .scoring import ReconstructionScorer
from .store import ModelHandle, ModelStore
from .train import AutoencoderTrainer

logger = logging.getLogger("ml.inference")


class AnomalyDetectionService:
    """
    End-to-end anomaly detection for six-channel machine readings.

    Usage:
        service = AnomalyDetectionService.create()
        service.train_model(history, epochs=10)
        record = service.predict_reading(reading)
    """

    def __init__(self, handle: ModelHandle, anomaly_log: AnomalyLog = None):
        self.handle = handle
        self.anomaly_log = anomaly_log
        self.normalizer = FeatureNormalizer()
        self.scorer = ReconstructionScorer()
        self.classifier = AnomalyClassifier()
        self.trainer = AutoencoderTrainer(handle, normalizer=self.normalizer,
                                          scorer=self.scorer)

    @classmethod
    def create(cls, store: ModelStore = None, anomaly_log: AnomalyLog = None) -> "AnomalyDetectionService":
        """Service over the configured store, loading any persisted model."""
        store = store or ModelStore()
        if anomaly_log is None:
            anomaly_log = AnomalyLog(config.ANOMALY_LOG_PATH)
        return cls(ModelHandle.open(store), anomaly_log)

    # ── Training ─────────────────────────────────────────────────

    def train_model(self, readings, **options) -> TrainingStatus:
        """See AutoencoderTrainer.train for options and errors."""
        return self.trainer.train(readings, **options)

    def get_model_status(self) -> TrainingStatus:
        return self.handle.status

    # ── Inference ────────────────────────────────────────────────

    def _as_vector(self, features) -> np.ndarray:
        try:
            vector = np.asarray(features, dtype=np.float64).reshape(-1)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Feature vector is not numeric: {e}") from e
        if vector.size != config.INPUT_DIM:
            raise ValidationError(
                f"Feature vector must have {config.INPUT_DIM} values, got {vector.size}"
            )
        if not np.all(np.isfinite(vector)):
            raise ValidationError("Feature vector contains non-finite values")
        return vector

    def predict(self, features, reading: SensorReading = None,
                record: bool = True) -> AnomalyRecord:
        """
        Score and classify one feature vector.

        Args:
            features: Normalized feature vector of length 6.
            reading: The reading the vector came from; supplies machine,
                timestamp and raw snapshot for the record.
            record: Append the result to the anomaly log.

        Raises:
            ModelNotFoundError: No trained or persisted model.
            ValidationError: Malformed feature vector.
        """
        model = self.handle.require_model()
        vector = self._as_vector(features)

        mse, squared, reconstruction = self.scorer.score_with_reconstruction(model, vector)
        result = self.classifier.build_record(
            mse,
            squared,
            machine_id=reading.machine_id if reading else "unknown",
            timestamp=reading.timestamp if reading else None,
            raw_data=reading.raw_data() if reading else {},
            prediction=reconstruction,
        )
        if record and self.anomaly_log is not None:
            self.anomaly_log.append(result)
        return result

    def predict_reading(self, reading, record: bool = True) -> AnomalyRecord:
        """Normalize a raw reading (dict or SensorReading) and predict."""
        if not isinstance(reading, SensorReading):
            reading = SensorReading.from_dict(reading)
        return self.predict(self.normalizer.normalize(reading), reading, record=record)

    def batch_predict(self, readings) -> list[AnomalyRecord]:
        """
        Predict every reading sequentially, in the order given.

        results[i] always belongs to readings[i].  The batch is written to
        the anomaly log in one step, oldest reading first, so the log stays
        newest-first.

        Raises:
            ModelNotFoundError: No trained or persisted model.
            ValidationError: A reading is malformed (nothing is recorded).
        """
        self.handle.require_model()
        parsed = [
            r if isinstance(r, SensorReading) else SensorReading.from_dict(r)
            for r in readings
        ]

        results = [self.predict_reading(r, record=False) for r in parsed]
        if self.anomaly_log is not None:
            self.anomaly_log.extend(sorted(results, key=lambda r: r.timestamp))

        if results:
            high = sum(1 for r in results if r.severity == "high")
            logger.info(f"Batch prediction: {len(results)} readings, {high} high severity")
        return results

    def evaluate_model(self, readings) -> dict:
        """
        Self-supervised diagnostic metrics of the current model on `readings`.

        Returns:
            Dict with accuracy, precision, recall, f1Score (0–100).  These
            are proxy metrics, not accuracy against labelled faults.

        Raises:
            ModelNotFoundError: No trained or persisted model.
        """
        model = self.handle.require_model()
        X = self.normalizer.normalize_batch(readings)
        scores = self.scorer.score_batch(model, X)
        return self_supervised_metrics(scores.mse)
