"""
schemas.py — Pipeline Data Types
=================================

Plain dataclasses for the values that flow through the pipeline:

    SensorReading   — one six-channel measurement from one machine
    QualityIssue    — an advisory warning raised by the data-quality check
    AnomalyRecord   — the scored, classified result for one reading
    TrainingStatus  — last known state of the model and its training run

`to_dict()` methods emit the camelCase field names the dashboard consumes.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from . import config
from .errors import ValidationError

# Alternative key names accepted for the machine identifier.
MACHINE_KEYS = ("machineId", "machine_id", "machine")


def parse_timestamp(value) -> datetime:
    """
    Parse an ISO-8601 string (a trailing 'Z' is accepted) or pass through
    a datetime. Naive values are assumed to be UTC.

    Raises:
        ValidationError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp {value!r}") from e
    else:
        raise ValidationError(f"Invalid timestamp {value!r}")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_channel(name: str, value) -> float:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Channel '{name}' is missing or not numeric")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Channel '{name}' is not numeric: {value!r}"
        ) from e
    if not math.isfinite(number):
        raise ValidationError(f"Channel '{name}' is not finite: {value!r}")
    return number


@dataclass(frozen=True)
class SensorReading:
    """One timestamped six-channel reading. Immutable once read."""

    timestamp: datetime
    machine_id: str
    temperature: float
    pressure: float
    vibration: float
    rotation: float
    current: float
    voltage: float

    @classmethod
    def from_dict(cls, data: dict) -> "SensorReading":
        """
        Build a reading from a raw record.

        Args:
            data: Dict with a timestamp, a machine identifier (machineId,
                machine_id or machine) and the six channel values.

        Raises:
            ValidationError: On a missing channel, a non-numeric or
                non-finite value, or an unparsable timestamp.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Reading must be a mapping, got {type(data).__name__}")

        missing = [c for c in config.CHANNELS if c not in data]
        if missing:
            raise ValidationError(f"Reading is missing channels: {missing}")

        machine_id = next(
            (data[k] for k in MACHINE_KEYS if data.get(k) not in (None, "")),
            None,
        )
        if machine_id is None:
            raise ValidationError("Reading has no machine identifier")

        if data.get("timestamp") is None:
            raise ValidationError("Reading has no timestamp")

        values = {c: _parse_channel(c, data[c]) for c in config.CHANNELS}
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            machine_id=str(machine_id),
            **values,
        )

    def channels(self) -> list[float]:
        """Channel values in config.CHANNELS order."""
        return [getattr(self, c) for c in config.CHANNELS]

    def raw_data(self) -> dict:
        return {c: getattr(self, c) for c in config.CHANNELS}

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "machineId": self.machine_id,
            **self.raw_data(),
        }


@dataclass(frozen=True)
class QualityIssue:
    """Advisory data-quality warning. Never aborts training on its own."""

    kind: str  # "missing" | "duplicate" | "outlier"
    channel: Optional[str]
    count: int
    message: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "channel": self.channel,
            "count": self.count,
            "message": self.message,
        }


@dataclass
class AnomalyRecord:
    """
    Classified result for one scored sample.

    risk_score and severity are deterministic functions of
    reconstruction_error (see classifier.py).
    """

    id: str
    timestamp: datetime
    machine_id: str
    risk_score: int
    reconstruction_error: float
    severity: str
    factors: list[str]
    raw_data: dict
    prediction: list[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "machineId": self.machine_id,
            "riskScore": self.risk_score,
            "reconstructionError": self.reconstruction_error,
            "severity": self.severity,
            "factors": list(self.factors),
            "rawData": dict(self.raw_data),
            "prediction": list(self.prediction),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnomalyRecord":
        return cls(
            id=data["id"],
            timestamp=parse_timestamp(data["timestamp"]),
            machine_id=data["machineId"],
            risk_score=int(data["riskScore"]),
            reconstruction_error=float(data["reconstructionError"]),
            severity=data["severity"],
            factors=list(data.get("factors", [])),
            raw_data=dict(data.get("rawData", {})),
            prediction=list(data.get("prediction", [])),
        )


def default_parameters() -> dict:
    """Hyperparameters reported before any training run has happened."""
    return {
        "epochs": config.DEFAULT_EPOCHS,
        "batchSize": config.DEFAULT_BATCH_SIZE,
        "learningRate": config.LEARNING_RATE,
        "hiddenLayers": 3,
        "dropoutRate": config.DROPOUT_RATE,
        "trainRatio": config.DEFAULT_TRAIN_RATIO,
    }


@dataclass
class TrainingStatus:
    """
    Last known state of the model.

    accuracy / precision / recall / f1_score are the self-supervised
    diagnostic metrics from classifier.self_supervised_metrics, on a
    0–100 scale. They are NOT validated accuracy against labelled faults.
    """

    is_training: bool = False
    last_trained: Optional[datetime] = None
    accuracy: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    f1_score: float = 0.0
    training_progress: float = 0.0
    training_epoch: int = 0
    total_epochs: int = 0
    parameters: dict = field(default_factory=default_parameters)
    loss: Optional[float] = None
    validation_loss: Optional[float] = None
    training_history: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "isTraining": self.is_training,
            "lastTrained": self.last_trained.isoformat() if self.last_trained else None,
            "accuracy": self.accuracy,
            "precision": self.precision,
            "recall": self.recall,
            "f1Score": self.f1_score,
            "trainingProgress": self.training_progress,
            "trainingEpoch": self.training_epoch,
            "totalEpochs": self.total_epochs,
            "parameters": dict(self.parameters),
            "loss": self.loss,
            "validationLoss": self.validation_loss,
            "trainingHistory": list(self.training_history),
            "metricsAreDiagnostic": True,
        }
