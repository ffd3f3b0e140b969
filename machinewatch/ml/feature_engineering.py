"""
feature_engineering.py — Sensor Reading Normalization
======================================================

Transforms a raw six-channel sensor reading into the fixed-length,
bounded feature vector the autoencoder consumes.

Input (one reading):
    temperature, pressure, vibration, rotation, current, voltage

Output feature vector (6 floats, config.CHANNELS order):
    clamp((value − min) / (max − min), 0, 1) per channel, using the fixed
    per-channel domain in config.CHANNEL_DOMAINS.

Why fixed domains rather than fitted min/max?
    The model must see the same transform at training and inference time,
    and a single out-of-range reading (a seized motor, a shorted sensor)
    must not rescale every other reading.  Fixed engineering bounds keep
    the mapping stable and make out-of-range values saturate at 0 or 1.
"""

import logging
import numpy as np

from . import config
from .schemas import SensorReading

logger = logging.getLogger("ml.feature_engineering")


def normalize_value(value: float, lower: float, upper: float) -> float:
    """
    Map a value into [0, 1] relative to [lower, upper], clamping outside.

    A degenerate domain (lower == upper) maps everything to 0.
    """
    span = upper - lower
    if span == 0:
        return 0.0
    return float(min(1.0, max(0.0, (value - lower) / span)))


class FeatureNormalizer:
    """
    Stateless reading → feature-vector mapper.

    Attributes:
        domains (dict): channel → (min, max).  Defaults to
            config.CHANNEL_DOMAINS.
    """

    def __init__(self, domains: dict = None):
        self.domains = dict(domains or config.CHANNEL_DOMAINS)

    def normalize(self, reading) -> np.ndarray:
        """
        Normalize one reading.

        Args:
            reading: SensorReading, or a raw dict accepted by
                SensorReading.from_dict.

        Returns:
            1-D float64 array of shape (6,) with every element in [0, 1].

        Raises:
            ValidationError: If a raw dict is malformed.
        """
        if not isinstance(reading, SensorReading):
            reading = SensorReading.from_dict(reading)

        return np.array(
            [
                normalize_value(getattr(reading, channel), *self.domains[channel])
                for channel in config.CHANNELS
            ],
            dtype=np.float64,
        )

    def normalize_batch(self, readings) -> np.ndarray:
        """
        Sort readings chronologically and normalize each one.

        Args:
            readings: Iterable of SensorReading or raw dicts.

        Returns:
            2-D array of shape (n_samples, 6), oldest reading first.
        """
        parsed = [
            r if isinstance(r, SensorReading) else SensorReading.from_dict(r)
            for r in readings
        ]
        parsed.sort(key=lambda r: r.timestamp)

        if not parsed:
            return np.empty((0, config.INPUT_DIM), dtype=np.float64)

        X = np.vstack([self.normalize(r) for r in parsed])
        logger.debug(f"Normalized {X.shape[0]} readings")
        return X


def features_to_dict(vector) -> dict:
    """Label a feature vector with its channel names."""
    return {
        channel: float(v)
        for channel, v in zip(config.CHANNELS, np.asarray(vector, dtype=np.float64))
    }
