"""
config.py — ML Pipeline Configuration Constants
================================================

Centralizes all channel domains, hyperparameters, thresholds, and file
paths used by the anomaly detection pipeline. Tuning these values adjusts
how the autoencoder is trained and how reconstruction error is turned into
a severity tier.

Each machine reports six sensor channels:
- temperature (°C)
- pressure    (bar)
- vibration   (mm/s)
- rotation    (rpm)
- current     (A)
- voltage     (V)
"""

import os

# ═══════════════════════════════════════════════════════════════════
# SENSOR CHANNELS
# ═══════════════════════════════════════════════════════════════════

# Canonical channel order. Feature vectors, model inputs and per-channel
# errors all follow this order.
CHANNELS = [
    "temperature",
    "pressure",
    "vibration",
    "rotation",
    "current",
    "voltage",
]

# Fixed (min, max) operating domain per channel. Readings are mapped to
# [0, 1] inside these bounds and clamped outside them.
CHANNEL_DOMAINS = {
    "temperature": (0.0, 100.0),
    "pressure": (0.0, 5.0),
    "vibration": (0.0, 2.0),
    "rotation": (500.0, 2000.0),
    "current": (0.0, 20.0),
    "voltage": (180.0, 260.0),
}

INPUT_DIM = len(CHANNELS)

# ═══════════════════════════════════════════════════════════════════
# DATA QUALITY
# ═══════════════════════════════════════════════════════════════════

# Training refuses to start below this many complete rows.
MIN_TRAINING_ROWS = 10

# A channel is reported when more than this fraction of the batch is
# missing or non-numeric.
MISSING_RATIO_THRESHOLD = 0.10

# A sample is a statistical outlier when |z| exceeds this value ...
OUTLIER_Z_THRESHOLD = 3.0

# ... and a channel is reported when more than this fraction of the batch
# is flagged.
OUTLIER_RATIO_THRESHOLD = 0.05

# ═══════════════════════════════════════════════════════════════════
# AUTOENCODER HYPERPARAMETERS
# ═══════════════════════════════════════════════════════════════════

# Defaults for a training run.
DEFAULT_EPOCHS = 10
DEFAULT_BATCH_SIZE = 32
DEFAULT_TRAIN_RATIO = 0.8

# Adam learning rate.
LEARNING_RATE = 0.001

# L1 weight penalty on the first encoder layer. Keeps the encoder
# weights sparse so the bottleneck cannot simply learn the identity.
L1_PENALTY = 1e-5

# The architecture has no dropout; reported in TrainingStatus.parameters.
DROPOUT_RATE = 0.0

# Random seed for reproducible weight init and epoch shuffling.
RANDOM_STATE = 42

# ═══════════════════════════════════════════════════════════════════
# CLASSIFICATION THRESHOLDS
# ═══════════════════════════════════════════════════════════════════

# risk_score = min(100, round(mse * RISK_SCALE))
RISK_SCALE = 500

# Severity bands on raw reconstruction MSE:
#   mse <= 0.1        → low
#   0.1 < mse <= 0.2  → medium
#   mse > 0.2         → high
# "critical" is reserved for escalation outside the classifier.
SEVERITY_LOW_MAX = 0.1
SEVERITY_MEDIUM_MAX = 0.2

SEVERITY_LEVELS = ["low", "medium", "high", "critical"]

# A channel is a contributing factor when its squared error exceeds this.
FACTOR_ERROR_THRESHOLD = 0.05
MAX_FACTORS = 3
DEFAULT_FACTOR = "unusual pattern detected"

# Adaptive threshold = mean + ADAPTIVE_STD_MULTIPLIER * std of batch MSE.
ADAPTIVE_STD_MULTIPLIER = 2.0

# Fraction of highest-error validation samples treated as synthetic
# positives by the diagnostic metric procedure.
SYNTHETIC_POSITIVE_RATIO = 0.10

# ═══════════════════════════════════════════════════════════════════
# MODEL / STATUS / RECORD PERSISTENCE PATHS
# ═══════════════════════════════════════════════════════════════════

# Base directory for the ML module (resolves relative to this file)
_ML_DIR = os.path.dirname(os.path.abspath(__file__))

# Directory where the model artifact, status and anomaly log are saved
SAVED_DIR = os.environ.get("ML_SAVED_DIR", os.path.join(_ML_DIR, "saved"))

# The single model slot for this deployment (Keras native format)
MODEL_PATH = os.path.join(SAVED_DIR, "autoencoder.keras")

# Last known TrainingStatus (joblib format)
STATUS_PATH = os.path.join(SAVED_DIR, "training_status.pkl")

# Newest-first anomaly record list (JSON)
ANOMALY_LOG_PATH = os.path.join(SAVED_DIR, "anomalies.json")

# Maximum number of anomaly records kept
ANOMALY_LOG_CAPACITY = int(os.environ.get("ML_ANOMALY_LOG_CAPACITY", "100"))

# ═══════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════

ML_SERVICE_PORT = int(os.environ.get("ML_SERVICE_PORT", "5050"))

# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

# Log level for the ML pipeline (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL = os.environ.get("ML_LOG_LEVEL", "INFO")
