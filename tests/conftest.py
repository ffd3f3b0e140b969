"""Shared fixtures for the anomaly pipeline tests."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from machinewatch.ml.inference import AnomalyDetectionService
from machinewatch.ml.records import AnomalyLog
from machinewatch.ml.store import ModelHandle, ModelStore


START = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def make_reading(i=0, machine="press-01", **overrides):
    """One healthy reading, one minute after the previous index."""
    reading = {
        "timestamp": (START + timedelta(minutes=i)).isoformat(),
        "machineId": machine,
        "temperature": 70.0,
        "pressure": 2.2,
        "vibration": 1.0,
        "rotation": 1250.0,
        "current": 10.0,
        "voltage": 220.0,
    }
    reading.update(overrides)
    return reading


def healthy_readings(n=200, seed=7, machine="press-01"):
    """
    Synthetic healthy operation: temperature ≈ 70±5, pressure ≈ 2.2±0.3,
    vibration ≈ 1.0±0.1, rotation ≈ 1250±50, current ≈ 10±1, voltage ≈ 220±3.
    """
    rng = np.random.default_rng(seed)
    return [
        make_reading(
            i,
            machine=machine,
            temperature=float(rng.normal(70, 5)),
            pressure=float(rng.normal(2.2, 0.3)),
            vibration=float(rng.normal(1.0, 0.1)),
            rotation=float(rng.normal(1250, 50)),
            current=float(rng.normal(10, 1)),
            voltage=float(rng.normal(220, 3)),
        )
        for i in range(n)
    ]


@pytest.fixture
def store(tmp_path):
    return ModelStore(
        model_path=str(tmp_path / "autoencoder.keras"),
        status_path=str(tmp_path / "status.pkl"),
    )


@pytest.fixture
def handle(store):
    return ModelHandle.open(store)


@pytest.fixture
def anomaly_log(tmp_path):
    return AnomalyLog(str(tmp_path / "anomalies.json"), capacity=100)


@pytest.fixture
def service(handle, anomaly_log):
    return AnomalyDetectionService(handle, anomaly_log)


@pytest.fixture(scope="module")
def trained_service(tmp_path_factory):
    """Service with a model trained on 200 healthy readings (10 epochs)."""
    root = tmp_path_factory.mktemp("trained")
    store = ModelStore(
        model_path=str(root / "autoencoder.keras"),
        status_path=str(root / "status.pkl"),
    )
    service = AnomalyDetectionService(
        ModelHandle.open(store), AnomalyLog(str(root / "anomalies.json"))
    )
    service.train_model(healthy_readings(200), epochs=10, batch_size=32)
    return service
