"""Tests for autoencoder training."""

import json
import os

import pytest

from machinewatch.ml.errors import (
    InsufficientDataError,
    ModelPersistenceError,
    TrainingFailure,
    TrainingInProgressError,
    ValidationError,
)
from machinewatch.ml.train import AutoencoderTrainer, train_model_from_file

from conftest import healthy_readings


class BrokenModel:
    def fit(self, *args, **kwargs):
        raise RuntimeError("gradient blew up")


def _read(path):
    with open(path, "rb") as f:
        return f.read()


@pytest.fixture
def trainer(handle):
    return AutoencoderTrainer(handle)


class TestTrainingRun:

    def test_successful_run(self, trainer, handle, store):
        calls = []
        status = trainer.train(
            healthy_readings(40), epochs=2, batch_size=8,
            on_progress=lambda *args: calls.append(args),
        )

        assert calls == [(0.0, 1, 2), (50.0, 2, 2)]
        assert status.training_progress == 100.0
        assert status.is_training is False
        assert status.last_trained is not None
        for value in (status.accuracy, status.precision, status.recall, status.f1_score):
            assert 0.0 <= value <= 100.0
        assert status.parameters["hiddenLayers"] == 3
        assert status.parameters["epochs"] == 2
        assert len(status.training_history) == 2

        assert store.exists()
        assert store.load_status().f1_score == status.f1_score
        assert handle.has_model
        assert handle.status.training_progress == 100.0

    def test_minimum_rows_are_enough(self, trainer):
        status = trainer.train(healthy_readings(10), epochs=1, batch_size=4)
        assert status.training_progress == 100.0


class TestTrainingRejections:

    def test_insufficient_data_leaves_artifact(self, trainer, store, handle):
        store.save(store.create_default())
        before = _read(store.model_path)

        with pytest.raises(InsufficientDataError):
            trainer.train(healthy_readings(9), epochs=1)

        assert _read(store.model_path) == before
        assert not handle.has_model
        assert handle.status.is_training is False

    @pytest.mark.parametrize("options", [
        {"epochs": 0},
        {"epochs": 2.5},
        {"batch_size": 0},
        {"train_ratio": 0.0},
        {"train_ratio": 1.0},
        {"train_ratio": "0.8"},
        {"train_ratio": True},
        {"train_ratio": float("nan")},
        {"epochs": True},
        {"batch_size": True},
        {"batch_size": "32"},
    ])
    def test_invalid_options(self, trainer, options):
        with pytest.raises(ValidationError):
            trainer.train(healthy_readings(20), **options)

    def test_empty_training_split(self, trainer):
        with pytest.raises(ValidationError):
            trainer.train(healthy_readings(10), train_ratio=0.05)

    def test_concurrent_run_is_rejected(self, trainer, handle):
        with handle.training_slot():
            with pytest.raises(TrainingInProgressError):
                trainer.train(healthy_readings(20), epochs=1)

    def test_library_failure(self, trainer, handle, store, monkeypatch):
        store.save(store.create_default())
        before = _read(store.model_path)
        monkeypatch.setattr(store, "load_or_create", lambda input_dim: BrokenModel())

        with pytest.raises(TrainingFailure):
            trainer.train(healthy_readings(20), epochs=1)

        assert _read(store.model_path) == before
        assert handle.status.is_training is False
        assert store.load_status() is None

    def test_status_write_failure_keeps_new_model_live(self, trainer, handle, store,
                                                       monkeypatch):
        from machinewatch.ml import store as store_module

        def full_disk(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(store_module.joblib, "dump", full_disk)

        with pytest.raises(ModelPersistenceError):
            trainer.train(healthy_readings(20), epochs=1, batch_size=8)

        assert store.exists()
        assert handle.has_model
        assert handle.status.training_progress == 100.0
        assert handle.status.is_training is False
        assert store.load_status() is None
        assert not os.path.exists(store.status_path + ".tmp")


class TestTrainFromFile:

    def test_json_export(self, tmp_path, monkeypatch):
        from machinewatch.ml import config

        monkeypatch.setattr(config, "MODEL_PATH", str(tmp_path / "m.keras"))
        monkeypatch.setattr(config, "STATUS_PATH", str(tmp_path / "s.pkl"))
        monkeypatch.setattr(config, "SAVED_DIR", str(tmp_path))
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"data": healthy_readings(20)}))

        assert train_model_from_file(str(path), epochs=1, batch_size=8) is True
        assert (tmp_path / "m.keras").exists()

    def test_too_few_rows(self, tmp_path, monkeypatch):
        from machinewatch.ml import config

        monkeypatch.setattr(config, "MODEL_PATH", str(tmp_path / "m.keras"))
        monkeypatch.setattr(config, "STATUS_PATH", str(tmp_path / "s.pkl"))
        monkeypatch.setattr(config, "SAVED_DIR", str(tmp_path))
        path = tmp_path / "history.json"
        path.write_text(json.dumps(healthy_readings(5)))

        assert train_model_from_file(str(path), epochs=1) is False
        assert not (tmp_path / "m.keras").exists()
