"""Tests for risk scoring, severity and contributing factors."""

import numpy as np
import pytest

from machinewatch.ml import config
from machinewatch.ml.classifier import (
    AnomalyClassifier,
    contributing_factors,
    risk_score,
    self_supervised_metrics,
    severity_for,
)


class TestRiskScore:

    @pytest.mark.parametrize("mse, expected", [
        (0.0, 0),
        (0.05, 25),
        (0.0009, 0),
        (0.2, 100),
        (0.3, 100),
        (5.0, 100),
    ])
    def test_values(self, mse, expected):
        assert risk_score(mse) == expected

    def test_half_rounds_up(self):
        assert risk_score(0.003) == 2  # 1.5


class TestSeverity:

    @pytest.mark.parametrize("mse, expected", [
        (0.05, "low"),
        (0.1, "low"),
        (0.15, "medium"),
        (0.2, "medium"),
        (0.25, "high"),
    ])
    def test_bands(self, mse, expected):
        assert severity_for(mse) == expected

    def test_never_critical(self):
        for mse in np.linspace(0, 10, 101):
            assert severity_for(mse) != "critical"


class TestContributingFactors:

    def test_top_three_above_threshold(self):
        squared = [0.30, 0.01, 0.20, 0.06, 0.40, 0.10]
        assert contributing_factors(squared) == ["current", "temperature", "vibration"]

    def test_only_above_threshold(self):
        squared = [0.0, 0.2, 0.05, 0.0, 0.0, 0.0]
        assert contributing_factors(squared) == ["pressure"]

    def test_default_when_nothing_stands_out(self):
        assert contributing_factors([0.01] * 6) == [config.DEFAULT_FACTOR]

    def test_ties_keep_channel_order(self):
        assert contributing_factors([0.25] * 6) == ["temperature", "pressure", "vibration"]


class TestAnomalyClassifier:

    def test_record_fields(self):
        record = AnomalyClassifier().build_record(
            0.25, [0.3, 0.3, 0.3, 0.2, 0.2, 0.2], machine_id="press-01",
            raw_data={"temperature": 300.0}, prediction=np.zeros(6),
        )

        assert record.id.startswith("anomaly-")
        assert record.machine_id == "press-01"
        assert record.risk_score == 100
        assert record.severity == "high"
        assert record.factors == ["temperature", "pressure", "vibration"]
        assert record.raw_data == {"temperature": 300.0}
        assert record.prediction == [0.0] * 6
        assert record.timestamp.tzinfo is not None

    def test_ids_are_unique(self):
        classifier = AnomalyClassifier()
        ids = {classifier.build_record(0.0, [0.0] * 6, "m").id for _ in range(50)}
        assert len(ids) == 50


class TestSelfSupervisedMetrics:

    def test_bounds(self):
        rng = np.random.default_rng(0)
        for n in (1, 5, 40, 500):
            metrics = self_supervised_metrics(rng.exponential(0.01, n))
            assert set(metrics) == {"accuracy", "precision", "recall", "f1Score"}
            assert all(0.0 <= v <= 100.0 for v in metrics.values())

    def test_clear_separation(self):
        mse = np.array([0.001] * 18 + [0.9, 0.95])
        metrics = self_supervised_metrics(mse)
        assert metrics["precision"] == 100.0
        assert metrics["recall"] == 100.0
        assert metrics["accuracy"] == 100.0

    def test_uniform_errors_predict_nothing(self):
        metrics = self_supervised_metrics(np.full(20, 0.25))
        assert metrics["precision"] == 0.0
        assert metrics["recall"] == 0.0
        assert metrics["accuracy"] == 90.0

    def test_empty(self):
        assert self_supervised_metrics([]) == {
            "accuracy": 0.0, "precision": 0.0, "recall": 0.0, "f1Score": 0.0,
        }
