"""Tests for model persistence and the ModelHandle."""

import os

import numpy as np
import pytest

from machinewatch.ml import config
from machinewatch.ml.errors import (
    ModelNotFoundError,
    ModelPersistenceError,
    TrainingInProgressError,
)
from machinewatch.ml.model import build_autoencoder
from machinewatch.ml.schemas import TrainingStatus
from machinewatch.ml.store import ModelHandle


class UnsavableModel:
    def save(self, path):
        raise OSError("disk full")


def _read(path):
    with open(path, "rb") as f:
        return f.read()


class TestModelStore:

    def test_load_missing_artifact(self, store):
        assert not store.exists()
        with pytest.raises(ModelNotFoundError):
            store.load()

    def test_load_unreadable_artifact(self, store):
        with open(store.model_path, "wb") as f:
            f.write(b"not a keras archive")
        with pytest.raises(ModelNotFoundError):
            store.load()

    def test_save_load_round_trip(self, store):
        model = build_autoencoder()
        X = np.random.default_rng(3).uniform(size=(5, config.INPUT_DIM)).astype("float32")

        store.save(model)
        restored = store.load()

        np.testing.assert_allclose(
            np.asarray(restored(X)), np.asarray(model(X)), atol=1e-6
        )

    def test_load_or_create_builds_default(self, store):
        model = store.load_or_create()
        assert model.output_shape == (None, config.INPUT_DIM)
        assert not store.exists()

    def test_failed_save_keeps_previous_artifact(self, store):
        store.save(build_autoencoder())
        before = _read(store.model_path)

        with pytest.raises(ModelPersistenceError):
            store.save(UnsavableModel())

        assert _read(store.model_path) == before

    def test_status_round_trip(self, store):
        status = TrainingStatus(accuracy=91.5, total_epochs=4,
                                parameters={"epochs": 4})
        store.save_status(status)

        loaded = store.load_status()

        assert loaded.accuracy == 91.5
        assert loaded.parameters == {"epochs": 4}

    def test_missing_status(self, store):
        assert store.load_status() is None

    def test_failed_status_save_keeps_previous_status(self, store, monkeypatch):
        from machinewatch.ml import store as store_module

        store.save_status(TrainingStatus(f1_score=12.0))

        def full_disk(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(store_module.joblib, "dump", full_disk)

        with pytest.raises(ModelPersistenceError):
            store.save_status(TrainingStatus(f1_score=99.0))

        assert store.load_status().f1_score == 12.0
        assert not os.path.exists(store.status_path + ".tmp")


class TestModelHandle:

    def test_open_without_artifact(self, store):
        handle = ModelHandle.open(store)
        assert not handle.has_model
        with pytest.raises(ModelNotFoundError):
            handle.require_model()

    def test_open_loads_persisted_model_and_status(self, store):
        store.save(build_autoencoder())
        store.save_status(TrainingStatus(is_training=True, f1_score=42.0))

        handle = ModelHandle.open(store)

        assert handle.has_model
        assert handle.status.f1_score == 42.0
        assert handle.status.is_training is False

    def test_status_is_a_copy(self, handle):
        status = handle.status
        status.parameters["epochs"] = 99
        assert "epochs" not in handle.status.parameters

    def test_second_training_slot_is_rejected(self, handle):
        with handle.training_slot():
            with pytest.raises(TrainingInProgressError):
                with handle.training_slot():
                    pass
        with handle.training_slot():
            pass
