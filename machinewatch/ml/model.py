"""
model.py — Dense Autoencoder Architecture
==========================================

Describes the autoencoder as a plain list of layer specs and builds the
Keras model from that list:

    Input (6)
      → Dense(max(8, ⌊d·1.5⌋), relu, L1)     encoder_hidden
      → Dense(max(4, ⌊d·0.75⌋), relu)        encoder_bottleneck
      → Dense(max(8, ⌊d·1.5⌋), relu)         decoder_hidden
      → Dense(d, sigmoid)                     decoder_output

Loss: mean squared error.  Optimizer: Adam (lr 0.001).  Metric: MAE.

Why an autoencoder?
    - No labelled fault data exists for these machines; the model only
      has to learn what "healthy" looks like.
    - A reading the model cannot reconstruct is, by construction, unlike
      anything it was trained on.  Reconstruction error is the anomaly
      signal.
    - Inputs are bounded to [0, 1], so a sigmoid output layer matches the
      target range exactly.

The layer specs are inspectable without importing TensorFlow, which keeps
architecture tests fast and backend-free.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from . import config

logger = logging.getLogger("ml.model")

MODEL_NAME = "machinewatch_autoencoder"


@dataclass(frozen=True)
class LayerSpec:
    """One dense layer: width, activation and optional L1 kernel penalty."""

    name: str
    units: int
    activation: str
    l1: Optional[float] = None


def autoencoder_layer_specs(input_dim: int = config.INPUT_DIM,
                            l1: float = config.L1_PENALTY) -> list[LayerSpec]:
    """
    Layer plan for an autoencoder over `input_dim` features.

    Args:
        input_dim: Feature vector length (6 sensor channels).
        l1: L1 kernel penalty on the first encoder layer.

    Returns:
        Ordered list of LayerSpec, input side first.
    """
    if input_dim < 1:
        raise ValueError(f"input_dim must be >= 1, got {input_dim}")

    hidden = max(8, int(input_dim * 1.5))
    bottleneck = max(4, int(input_dim * 0.75))
    return [
        LayerSpec("encoder_hidden", hidden, "relu", l1),
        LayerSpec("encoder_bottleneck", bottleneck, "relu"),
        LayerSpec("decoder_hidden", hidden, "relu"),
        LayerSpec("decoder_output", input_dim, "sigmoid"),
    ]


def hidden_layer_count(specs: list[LayerSpec]) -> int:
    """Number of layers between input and reconstruction output."""
    return len(specs) - 1


def build_autoencoder(input_dim: int = config.INPUT_DIM,
                      specs: list[LayerSpec] = None,
                      learning_rate: float = config.LEARNING_RATE):
    """
    Materialize and compile the Keras model for a layer plan.

    Args:
        input_dim: Feature vector length.
        specs: Layer plan.  Defaults to autoencoder_layer_specs(input_dim).
        learning_rate: Adam learning rate.

    Returns:
        A compiled keras.Sequential model.
    """
    from tensorflow import keras
    from tensorflow.keras import layers, regularizers

    specs = specs or autoencoder_layer_specs(input_dim)

    model = keras.Sequential(name=MODEL_NAME)
    model.add(keras.Input(shape=(input_dim,), name="features"))
    for spec in specs:
        model.add(layers.Dense(
            spec.units,
            activation=spec.activation,
            kernel_regularizer=regularizers.L1(spec.l1) if spec.l1 else None,
            name=spec.name,
        ))

    model.compile(
        optimizer=keras.optimizers.Adam(learning_rate=learning_rate),
        loss="mse",
        metrics=["mae"],
    )

    logger.info(
        "Built autoencoder: "
        + " → ".join(f"{s.units}({s.activation})" for s in specs)
        + f", {model.count_params()} parameters"
    )
    return model
