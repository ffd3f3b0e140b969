"""Tests for reconstruction scoring."""

import numpy as np
import pytest

from machinewatch.ml.scoring import ReconstructionScorer, adaptive_threshold, forward_pass


class RecordingModel:
    """Echoes its input and remembers what it was called with."""

    def __init__(self):
        self.calls = []

    def __call__(self, x, training=False):
        self.calls.append(training)
        return np.asarray(x) * 0.5


class ExplodingModel:
    def __call__(self, x, training=False):
        raise RuntimeError("device lost")


class TestForwardPass:

    def test_yields_detached_array(self):
        model = RecordingModel()
        with forward_pass(model, [0.2, 0.4, 0.6, 0.8, 1.0, 0.0]) as reconstruction:
            assert isinstance(reconstruction, np.ndarray)
            assert reconstruction.dtype == np.float64
            np.testing.assert_allclose(reconstruction, [0.1, 0.2, 0.3, 0.4, 0.5, 0.0],
                                       rtol=1e-6)
        assert model.calls == [False]

    def test_model_error_propagates(self):
        with pytest.raises(RuntimeError):
            with forward_pass(ExplodingModel(), [0.5] * 6):
                pass


class TestReconstructionScorer:

    def test_score_is_non_negative(self):
        rng = np.random.default_rng(1)
        scorer = ReconstructionScorer()
        for _ in range(20):
            mse, squared = scorer.score(RecordingModel(), rng.uniform(size=6))
            assert mse >= 0.0
            assert np.all(squared >= 0.0)

    def test_score_batch(self):
        X = np.array([[0.0] * 6, [1.0] * 6])
        scores = ReconstructionScorer().score_batch(RecordingModel(), X)

        np.testing.assert_allclose(scores.mse, [0.0, 0.25], rtol=1e-6)
        assert scores.reconstructions.shape == (2, 6)
        assert scores.threshold == pytest.approx(adaptive_threshold(scores.mse))

    def test_empty_batch(self):
        scores = ReconstructionScorer().score_batch(RecordingModel(), np.empty((0, 6)))
        assert scores.mse.size == 0
        assert scores.threshold == 0.0
