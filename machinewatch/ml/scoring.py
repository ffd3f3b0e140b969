"""
scoring.py — Reconstruction Error Scoring
==========================================

Runs the autoencoder forward and measures how well it reproduced its
input:

    squared_error[c] = (x[c] − x̂[c])²            per channel
    mse              = mean(squared_error)        per sample

For a batch it also reports the mean and standard deviation of per-sample
MSE and an adaptive threshold, mean + 2·std.  The adaptive threshold is a
diagnostic only: production severity comes from the fixed MSE bands in
classifier.py.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass

import numpy as np

from . import config

logger = logging.getLogger("ml.scoring")


@dataclass
class BatchScores:
    """Per-sample errors plus corpus-level statistics for a batch."""

    mse: np.ndarray              # (n,)
    squared_errors: np.ndarray   # (n, d)
    reconstructions: np.ndarray  # (n, d)
    mean: float
    std: float
    threshold: float


@contextmanager
def forward_pass(model, vector):
    """
    Run one input row through the model.

    Yields the reconstruction as a detached numpy copy of shape (d,).  The
    input tensor and the raw model output are only referenced inside this
    scope and are dropped on every exit path, including errors raised while
    the model runs.
    """
    import tensorflow as tf

    tensor = tf.convert_to_tensor(
        np.asarray(vector, dtype=np.float32).reshape(1, -1)
    )
    output = None
    try:
        output = model(tensor, training=False)
        yield np.array(output, dtype=np.float64).reshape(-1)
    finally:
        del tensor, output


def adaptive_threshold(mse: np.ndarray,
                       multiplier: float = config.ADAPTIVE_STD_MULTIPLIER) -> float:
    """mean + multiplier · std of per-sample MSE (0 for an empty batch)."""
    if mse.size == 0:
        return 0.0
    return float(mse.mean() + multiplier * mse.std())


class ReconstructionScorer:
    """Reconstruction-error scorer for a trained autoencoder."""

    def reconstruct(self, model, vector) -> np.ndarray:
        """Model output for one feature vector, shape (d,)."""
        with forward_pass(model, vector) as reconstruction:
            return reconstruction

    def score(self, model, vector) -> tuple[float, np.ndarray]:
        """
        Score one feature vector.

        Args:
            model: Trained autoencoder.
            vector: Feature vector of shape (d,), values in [0, 1].

        Returns:
            (mse, per_channel_squared_error).  mse is always >= 0.
        """
        mse, squared, _ = self.score_with_reconstruction(model, vector)
        return mse, squared

    def score_with_reconstruction(self, model, vector) -> tuple[float, np.ndarray, np.ndarray]:
        """Like score(), also returning the reconstructed vector."""
        x = np.asarray(vector, dtype=np.float64).reshape(-1)
        x_hat = self.reconstruct(model, x)
        squared = np.square(x - x_hat)
        return float(squared.mean()), squared, x_hat

    def score_batch(self, model, X) -> BatchScores:
        """
        Score every row of X, one sample at a time.

        Args:
            model: Trained autoencoder.
            X: 2-D array of shape (n_samples, d).

        Returns:
            BatchScores with per-sample MSE, squared errors, reconstructions
            and the adaptive threshold.
        """
        X = np.asarray(X, dtype=np.float64)
        n, d = X.shape if X.ndim == 2 else (0, config.INPUT_DIM)

        mse = np.zeros(n)
        squared = np.zeros((n, d))
        recon = np.zeros((n, d))
        for i in range(n):
            mse[i], squared[i], recon[i] = self.score_with_reconstruction(model, X[i])

        threshold = adaptive_threshold(mse)
        scores = BatchScores(
            mse=mse,
            squared_errors=squared,
            reconstructions=recon,
            mean=float(mse.mean()) if n else 0.0,
            std=float(mse.std()) if n else 0.0,
            threshold=threshold,
        )
        if n:
            logger.info(f"Scored {n} samples: mean MSE={scores.mean:.5f} "
                        f"std={scores.std:.5f} adaptive threshold={threshold:.5f}")
        return scores
