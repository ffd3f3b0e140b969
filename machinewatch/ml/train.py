"""
train.py — Autoencoder Training
================================

Fits the autoencoder to a batch of historical sensor readings, computes
the validation loss and the self-supervised diagnostic metrics, and
persists the trained artifact.

This script can be run standalone:
    python -m machinewatch.ml.train --data readings.csv

Or called programmatically:
    from machinewatch.ml.train import AutoencoderTrainer
    status = AutoencoderTrainer(handle).train(readings, epochs=10)

Training flow:
    1. Run the advisory data-quality checks (issues are logged)
    2. Keep complete readings; abort if fewer than 10 remain
    3. Sort chronologically and normalize into feature vectors
    4. Split train / validation by index at ⌊n · train_ratio⌋
    5. Load the persisted model, or create a default one
    6. Fit (input == target), shuffling each epoch, reporting progress
    7. Evaluate validation loss and the diagnostic metrics
    8. Save the model, then install it in the handle
"""

import argparse
import logging
import math
import numbers
import sys
from datetime import datetime, timezone

import numpy as np
from tensorflow import keras

from . import config
from .classifier import self_supervised_metrics
from .errors import PipelineError, TrainingFailure, ValidationError
from .feature_engineering import FeatureNormalizer
from .model import autoencoder_layer_specs, hidden_layer_count
from .preprocessing import DataQualityValidator
from .schemas import TrainingStatus
from .scoring import ReconstructionScorer
from .store import ModelHandle, ModelStore
from .utils import ensure_saved_dir, setup_logging

logger = logging.getLogger("ml.train")


class EpochProgress(keras.callbacks.Callback):
    """
    Reports progress at the start of every epoch and logs losses at the end.

    on_progress(percent, epoch, total_epochs) is a notification only; it
    cannot cancel the run.
    """

    def __init__(self, total_epochs: int, handle: ModelHandle, on_progress=None):
        super().__init__()
        self.total_epochs = total_epochs
        self.handle = handle
        self.on_progress = on_progress
        self.history: list[dict] = []

    def on_epoch_begin(self, epoch, logs=None):
        percent = round(epoch / self.total_epochs * 100, 1)
        self.handle.update_status(training_progress=percent, training_epoch=epoch + 1)
        if self.on_progress is not None:
            self.on_progress(percent, epoch + 1, self.total_epochs)

    def on_epoch_end(self, epoch, logs=None):
        logs = logs or {}
        loss = float(logs.get("loss", float("nan")))
        val_loss = float(logs.get("val_loss", float("nan")))
        logger.info(f"Epoch {epoch + 1}/{self.total_epochs}: "
                    f"loss={loss:.5f} val_loss={val_loss:.5f}")
        self.history.append({
            "epoch": epoch + 1,
            "loss": loss,
            "valLoss": val_loss,
            "mae": float(logs.get("mae", float("nan"))),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_options(train_ratio: float, epochs: int, batch_size: int) -> None:
    if not _is_count(epochs) or epochs < 1:
        raise ValidationError(f"epochs must be an integer >= 1, got {epochs!r}")
    if not _is_count(batch_size) or batch_size < 1:
        raise ValidationError(f"batch_size must be an integer >= 1, got {batch_size!r}")
    if (not isinstance(train_ratio, numbers.Real) or isinstance(train_ratio, bool)
            or not (0 < train_ratio < 1)):
        raise ValidationError(f"train_ratio must be a number in (0, 1), got {train_ratio!r}")


class AutoencoderTrainer:
    """
    Trains the autoencoder held by a ModelHandle.

    The handle's model is only replaced after the new artifact has been
    saved; any failure before that leaves both the persisted artifact and
    the in-memory model untouched.  If only the status write fails, the new
    model is already live and ModelPersistenceError is raised.
    """

    def __init__(self, handle: ModelHandle,
                 normalizer: FeatureNormalizer = None,
                 validator: DataQualityValidator = None,
                 scorer: ReconstructionScorer = None):
        self.handle = handle
        self.normalizer = normalizer or FeatureNormalizer()
        self.validator = validator or DataQualityValidator()
        self.scorer = scorer or ReconstructionScorer()

    def train(self, readings,
              train_ratio: float = config.DEFAULT_TRAIN_RATIO,
              epochs: int = config.DEFAULT_EPOCHS,
              batch_size: int = config.DEFAULT_BATCH_SIZE,
              on_progress=None) -> TrainingStatus:
        """
        Train on `readings` and persist the result.

        Args:
            readings: Iterable of raw dicts or SensorReadings.
            train_ratio: Fraction of rows (oldest first) used for fitting.
            epochs: Number of passes over the training split.
            batch_size: Mini-batch size.
            on_progress: Optional callback(percent, epoch, total_epochs).

        Returns:
            TrainingStatus of the completed run.

        Raises:
            ValidationError: Invalid options.
            InsufficientDataError: Fewer than MIN_TRAINING_ROWS valid rows.
            TrainingInProgressError: Another run is active.
            TrainingFailure: Divergence or a library failure during fit.
            ModelPersistenceError: The trained model could not be saved.
        """
        _check_options(train_ratio, epochs, batch_size)
        readings = list(readings)

        issues = self.validator.validate(readings)
        valid = self.validator.require_sufficient(readings)

        X = self.normalizer.normalize_batch(valid)
        split = int(math.floor(len(X) * train_ratio))
        if split == 0:
            raise ValidationError(
                f"train_ratio={train_ratio} leaves no training rows out of {len(X)}"
            )
        X_train, X_val = X[:split], X[split:]

        with self.handle.training_slot():
            logger.info("=" * 60)
            logger.info("STARTING AUTOENCODER TRAINING")
            logger.info(f"  {len(X_train)} training / {len(X_val)} validation rows, "
                        f"{len(issues)} data-quality issues")
            logger.info("=" * 60)

            self.handle.update_status(
                is_training=True,
                training_progress=0.0,
                training_epoch=0,
                total_epochs=epochs,
            )
            finished = False
            try:
                model, progress, val_loss, val_mse = self._fit(
                    X_train, X_val, epochs, batch_size, on_progress
                )

                metrics = self_supervised_metrics(val_mse)
                status = TrainingStatus(
                    is_training=False,
                    last_trained=datetime.now(timezone.utc),
                    accuracy=metrics["accuracy"],
                    precision=metrics["precision"],
                    recall=metrics["recall"],
                    f1_score=metrics["f1Score"],
                    training_progress=100.0,
                    training_epoch=epochs,
                    total_epochs=epochs,
                    parameters={
                        "epochs": epochs,
                        "batchSize": batch_size,
                        "learningRate": config.LEARNING_RATE,
                        "hiddenLayers": hidden_layer_count(
                            autoencoder_layer_specs(X.shape[1])
                        ),
                        "dropoutRate": config.DROPOUT_RATE,
                        "trainRatio": train_ratio,
                    },
                    loss=progress.history[-1]["loss"],
                    validation_loss=val_loss,
                    training_history=progress.history,
                )

                # Once the artifact is replaced the handle must serve it, even
                # if the status write below fails.
                self.handle.store.save(model)
                self.handle.swap(model, status)
                finished = True
                self.handle.store.save_status(status)
            finally:
                if not finished:
                    self.handle.update_status(is_training=False)

        logger.info("=" * 60)
        logger.info("AUTOENCODER TRAINING COMPLETE")
        logger.info(f"  loss={status.loss:.5f} val_loss={status.validation_loss:.5f}")
        logger.info(f"  Model saved to: {self.handle.store.model_path}")
        logger.info("=" * 60)
        return status

    def _fit(self, X_train, X_val, epochs, batch_size, on_progress):
        """Load-or-create, fit and evaluate.  Library errors → TrainingFailure."""
        progress = EpochProgress(epochs, self.handle, on_progress)
        try:
            keras.utils.set_random_seed(config.RANDOM_STATE)
            model = self.handle.store.load_or_create(X_train.shape[1])

            model.fit(
                X_train, X_train,  # autoencoder: input == target
                epochs=epochs,
                batch_size=batch_size,
                shuffle=True,
                validation_data=(X_val, X_val),
                callbacks=[progress, keras.callbacks.TerminateOnNaN()],
                verbose=0,
            )
            evaluation = model.evaluate(X_val, X_val, verbose=0, return_dict=True)
            val_scores = self.scorer.score_batch(model, X_val)
        except Exception as e:
            logger.error(f"Training failed: {e}", exc_info=True)
            raise TrainingFailure(f"Training failed: {e}") from e

        final_loss = progress.history[-1]["loss"] if progress.history else float("nan")
        val_loss = float(evaluation["loss"])
        if len(progress.history) < epochs or not np.isfinite(final_loss) \
                or not np.isfinite(val_loss):
            logger.error(f"Training diverged (loss={final_loss}, val_loss={val_loss})")
            raise TrainingFailure("Training diverged: loss is not finite")

        return model, progress, val_loss, val_scores.mse


def train_model_from_file(path: str,
                          train_ratio: float = config.DEFAULT_TRAIN_RATIO,
                          epochs: int = config.DEFAULT_EPOCHS,
                          batch_size: int = config.DEFAULT_BATCH_SIZE) -> bool:
    """
    Complete training pipeline from a CSV / JSON export.

    Returns:
        True if training succeeded, False otherwise.
    """
    from .sources import FileReadingSource

    setup_logging()
    ensure_saved_dir()

    try:
        readings = FileReadingSource(path).get_data()
        handle = ModelHandle.open(ModelStore())
        AutoencoderTrainer(handle).train(
            readings, train_ratio=train_ratio, epochs=epochs, batch_size=batch_size
        )
    except (PipelineError, OSError, ValueError) as e:
        logger.error(f"Training aborted: {e}")
        return False
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Train the machine anomaly autoencoder from a reading export."
    )
    parser.add_argument("--data", required=True, help="CSV or JSON file of readings")
    parser.add_argument("--epochs", type=int, default=config.DEFAULT_EPOCHS)
    parser.add_argument("--batch-size", type=int, default=config.DEFAULT_BATCH_SIZE)
    parser.add_argument("--train-ratio", type=float, default=config.DEFAULT_TRAIN_RATIO)
    args = parser.parse_args(argv)

    success = train_model_from_file(
        args.data,
        train_ratio=args.train_ratio,
        epochs=args.epochs,
        batch_size=args.batch_size,
    )
    return 0 if success else 1


# ── CLI entry point ──────────────────────────────────────────────
if __name__ == "__main__":
    sys.exit(main())
