"""
store.py — Model Artifact Persistence and Handle
=================================================

ModelStore owns the single model slot of a deployment:
    load()            — read the persisted artifact (ModelNotFoundError if
                        absent or unreadable)
    load_or_create()  — load, falling back to a fresh default model
    save(model)       — write a new artifact, replacing the old one
    create_default()  — untrained autoencoder sized to the feature vector

Saves go to a temporary file first and are swapped into place with
os.replace, under a single-writer lock.  A failed save therefore leaves
the previous artifact byte-for-byte intact.

ModelHandle is the explicit context object the service passes around
instead of a module-level singleton: it holds the current in-memory model,
the last known TrainingStatus and the locks guarding both.
"""

import dataclasses
import logging
import os
import threading
from contextlib import contextmanager

import joblib

from . import config
from .errors import ModelNotFoundError, ModelPersistenceError, TrainingInProgressError
from .model import build_autoencoder
from .schemas import TrainingStatus

logger = logging.getLogger("ml.store")


class ModelStore:
    """
    File-backed single-slot model store.

    Attributes:
        model_path (str): Path of the Keras artifact (must end in .keras).
        status_path (str): Path of the joblib-serialized TrainingStatus.
    """

    def __init__(self, model_path: str = None, status_path: str = None):
        self.model_path = model_path or config.MODEL_PATH
        self.status_path = status_path or config.STATUS_PATH
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return os.path.isfile(self.model_path)

    # ── Model artifact ────────────────────────────────────────────

    def load(self):
        """
        Load the persisted model.

        Raises:
            ModelNotFoundError: If no artifact exists or it cannot be read.
        """
        from tensorflow import keras

        with self._lock:
            if not self.exists():
                raise ModelNotFoundError(f"No model artifact at {self.model_path}")
            try:
                model = keras.models.load_model(self.model_path)
            except Exception as e:
                logger.warning(f"Model artifact at {self.model_path} is unreadable: {e}")
                raise ModelNotFoundError(
                    f"Model artifact at {self.model_path} is unreadable"
                ) from e

        logger.info(f"Model loaded from {self.model_path}")
        return model

    @staticmethod
    def create_default(input_dim: int = config.INPUT_DIM):
        """Fresh, untrained autoencoder for `input_dim` features."""
        return build_autoencoder(input_dim)

    def load_or_create(self, input_dim: int = config.INPUT_DIM):
        """Load the persisted model, or build a default one if that fails."""
        try:
            return self.load()
        except ModelNotFoundError as e:
            logger.info(f"{e}; creating a new default model")
            return self.create_default(input_dim)

    def save(self, model) -> None:
        """
        Persist `model` into the slot, replacing the previous artifact.

        Raises:
            ModelPersistenceError: If writing or swapping fails.
        """
        tmp_path = os.path.splitext(self.model_path)[0] + ".tmp.keras"
        with self._lock:
            try:
                os.makedirs(os.path.dirname(self.model_path) or ".", exist_ok=True)
                model.save(tmp_path)
                os.replace(tmp_path, self.model_path)
            except Exception as e:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                logger.error(f"Failed to save model to {self.model_path}: {e}")
                raise ModelPersistenceError(
                    f"Failed to save model to {self.model_path}"
                ) from e
        logger.info(f"Model saved to {self.model_path}")

    # ── Training status ───────────────────────────────────────────

    def save_status(self, status: TrainingStatus) -> None:
        """
        Serialize the last TrainingStatus to disk using joblib.

        Raises:
            ModelPersistenceError: If writing or swapping fails.
        """
        tmp_path = self.status_path + ".tmp"
        with self._lock:
            try:
                os.makedirs(os.path.dirname(self.status_path) or ".", exist_ok=True)
                joblib.dump(dataclasses.asdict(status), tmp_path)
                os.replace(tmp_path, self.status_path)
            except Exception as e:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                logger.error(f"Failed to save training status to {self.status_path}: {e}")
                raise ModelPersistenceError(
                    f"Failed to save training status to {self.status_path}"
                ) from e
        logger.debug(f"Training status saved to {self.status_path}")

    def load_status(self) -> TrainingStatus | None:
        """Last persisted TrainingStatus, or None if absent or unreadable."""
        with self._lock:
            if not os.path.isfile(self.status_path):
                return None
            try:
                fields = joblib.load(self.status_path)
                return TrainingStatus(**fields)
            except Exception as e:
                logger.warning(f"Ignoring unreadable status at {self.status_path}: {e}")
                return None


class ModelHandle:
    """
    Current model + status for one service instance.

    Usage:
        handle = ModelHandle.open(ModelStore())
        model = handle.require_model()
    """

    def __init__(self, store: ModelStore, model=None, status: TrainingStatus = None):
        self.store = store
        self._model = model
        self._status = status or TrainingStatus()
        self._lock = threading.RLock()
        self._training = threading.Lock()

    @classmethod
    def open(cls, store: ModelStore) -> "ModelHandle":
        """
        Attach to a store, loading the persisted model and status if any.

        A missing or unreadable artifact is not an error here: the handle
        simply starts without a model until the first training run.
        """
        try:
            model = store.load()
        except ModelNotFoundError as e:
            logger.info(f"Starting without a model: {e}")
            model = None
        status = store.load_status()
        if status is not None:
            status.is_training = False
        return cls(store, model, status)

    @property
    def model(self):
        with self._lock:
            return self._model

    @property
    def has_model(self) -> bool:
        return self.model is not None

    def require_model(self):
        """
        Raises:
            ModelNotFoundError: If no model has been trained or loaded.
        """
        model = self.model
        if model is None:
            raise ModelNotFoundError(
                "No trained model available. Train the model first."
            )
        return model

    def swap(self, model, status: TrainingStatus) -> None:
        """Install a freshly trained model and its status."""
        with self._lock:
            self._model = model
            self._status = status

    @property
    def status(self) -> TrainingStatus:
        """Copy of the last known status."""
        with self._lock:
            return dataclasses.replace(
                self._status,
                parameters=dict(self._status.parameters),
                training_history=list(self._status.training_history),
            )

    def update_status(self, **changes) -> None:
        with self._lock:
            self._status = dataclasses.replace(self._status, **changes)

    @contextmanager
    def training_slot(self):
        """
        Exclusive right to train.  Concurrent train requests are rejected
        rather than queued.

        Raises:
            TrainingInProgressError: If another run holds the slot.
        """
        if not self._training.acquire(blocking=False):
            raise TrainingInProgressError("A training run is already in progress")
        try:
            yield
        finally:
            self._training.release()
