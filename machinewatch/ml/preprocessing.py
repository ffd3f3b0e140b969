"""
preprocessing.py — Pre-Training Data Quality Checks
====================================================

Responsibilities in the machine monitoring pipeline:
1. Report channels with too many missing / non-numeric values.
2. Report duplicate (machine, timestamp) readings.
3. Report channels with too many statistical (z-score) outliers.
4. Enforce the hard precondition that training gets at least
   config.MIN_TRAINING_ROWS complete readings.

Why each step matters:
- **Missing values**: a dropped sensor or a gateway reboot produces rows
  with gaps.  Incomplete rows are excluded from training; if a whole
  channel is mostly empty the operator should know before trusting
  the model.
- **Duplicates**: the same reading imported twice over-weights that
  operating state.  Reported, never fatal.
- **Z-score outliers**: a handful of wild readings in the training set
  teaches the autoencoder that the wild state is normal.  Reported so the
  operator can clean the history, never removed silently.

Only the minimum-rows check is fatal; everything else is advisory and
training proceeds regardless.
"""

import logging
import numpy as np
import pandas as pd

from . import config
from .errors import InsufficientDataError, ValidationError
from .schemas import MACHINE_KEYS, QualityIssue, SensorReading

logger = logging.getLogger("ml.preprocessing")


def _record_to_row(record) -> dict:
    if isinstance(record, SensorReading):
        return {
            "machine_id": record.machine_id,
            "timestamp": record.timestamp,
            **record.raw_data(),
        }
    if not isinstance(record, dict):
        return {}
    row = {c: record.get(c) for c in config.CHANNELS}
    row["timestamp"] = record.get("timestamp")
    row["machine_id"] = next(
        (record[k] for k in MACHINE_KEYS if record.get(k) not in (None, "")),
        None,
    )
    return row


def readings_to_frame(readings) -> pd.DataFrame:
    """
    Build a DataFrame from raw records or SensorReadings.

    Channel columns are coerced to numbers: missing, non-numeric and
    non-finite values all become NaN.  Unparsable timestamps become NaT.

    Args:
        readings: Iterable of dicts or SensorReading objects.

    Returns:
        DataFrame with columns machine_id, timestamp and the six channels.
    """
    df = pd.DataFrame(
        [_record_to_row(r) for r in readings],
        columns=["machine_id", "timestamp", *config.CHANNELS],
    )
    df["timestamp"] = pd.to_datetime(
        df["timestamp"].astype("object"), errors="coerce", utc=True, format="mixed"
    )
    for col in config.CHANNELS:
        numeric = pd.to_numeric(df[col], errors="coerce")
        df[col] = numeric.replace([np.inf, -np.inf], np.nan)
    return df


def _leave_one_out_zscores(values: np.ndarray) -> np.ndarray:
    """
    |z| of each value against the mean / population std of the OTHER values.

    Uses the identity x_i − mean_{−i} = d_i · n/(n−1), with d_i the
    deviation from the full-batch mean, and
    var_{−i} = (Σd² − d_i² · n/(n−1)) / (n−1).
    A value that differs from an otherwise constant channel gets z = inf.
    """
    n = values.size
    d = values - values.mean()
    diff = np.abs(d) * n / (n - 1)
    loo_var = (np.sum(d ** 2) - d ** 2 * n / (n - 1)) / (n - 1)
    loo_std = np.sqrt(np.clip(loo_var, 0.0, None))

    tol = 1e-9 * max(1.0, float(np.abs(values).max()))
    has_spread = loo_std > tol
    safe_std = np.where(has_spread, loo_std, 1.0)
    return np.where(
        has_spread,
        diff / safe_std,
        np.where(diff > tol, np.inf, 0.0),
    )


class DataQualityValidator:
    """
    Advisory data-quality checks plus the fatal minimum-rows precondition.

    Attributes:
        missing_ratio (float): Missing fraction above which a channel is
            reported.
        z_threshold (float): |z| above which a sample is an outlier.
        outlier_ratio (float): Outlier fraction above which a channel is
            reported.
        min_rows (int): Minimum complete rows required for training.
    """

    def __init__(self,
                 missing_ratio: float = None,
                 z_threshold: float = None,
                 outlier_ratio: float = None,
                 min_rows: int = None):
        self.missing_ratio = (missing_ratio if missing_ratio is not None
                              else config.MISSING_RATIO_THRESHOLD)
        self.z_threshold = (z_threshold if z_threshold is not None
                            else config.OUTLIER_Z_THRESHOLD)
        self.outlier_ratio = (outlier_ratio if outlier_ratio is not None
                              else config.OUTLIER_RATIO_THRESHOLD)
        self.min_rows = min_rows if min_rows is not None else config.MIN_TRAINING_ROWS

    # ── Advisory checks ───────────────────────────────────────────

    def validate(self, readings) -> list[QualityIssue]:
        """
        Run all advisory checks on a batch.

        Args:
            readings: Iterable of raw dicts or SensorReadings.

        Returns:
            List of QualityIssue (empty when the batch looks clean).
        """
        df = readings if isinstance(readings, pd.DataFrame) else readings_to_frame(readings)
        if df.empty:
            return []

        issues = []
        issues.extend(self.check_missing(df))
        issues.extend(self.check_duplicates(df))
        issues.extend(self.check_outliers(df))

        for issue in issues:
            logger.warning(f"Data quality: {issue.message}")
        return issues

    def check_missing(self, df: pd.DataFrame) -> list[QualityIssue]:
        """Channels whose missing / non-numeric count exceeds the ratio."""
        issues = []
        total = len(df)
        for col in config.CHANNELS:
            missing = int(df[col].isna().sum())
            if missing > self.missing_ratio * total:
                issues.append(QualityIssue(
                    kind="missing",
                    channel=col,
                    count=missing,
                    message=(f"{col}: {missing}/{total} values missing or "
                             f"non-numeric ({missing / total * 100:.1f}%)"),
                ))
        return issues

    @staticmethod
    def check_duplicates(df: pd.DataFrame) -> list[QualityIssue]:
        """Duplicate (machine_id, timestamp) pairs.  Informational."""
        keyed = df.dropna(subset=["machine_id", "timestamp"])
        duplicates = int(keyed.duplicated(subset=["machine_id", "timestamp"]).sum())
        if duplicates == 0:
            return []
        return [QualityIssue(
            kind="duplicate",
            channel=None,
            count=duplicates,
            message=f"{duplicates} duplicate (machine, timestamp) readings",
        )]

    def check_outliers(self, df: pd.DataFrame) -> list[QualityIssue]:
        """
        Channels whose z-score outlier count exceeds the ratio.

        Each sample is scored against the other samples of the batch, so a
        single extreme value in a small batch cannot hide itself by
        inflating the standard deviation it is measured with.
        """
        issues = []
        total = len(df)
        for col in config.CHANNELS:
            values = df[col].dropna().to_numpy(dtype=np.float64)
            if values.size < 3:
                continue
            z = _leave_one_out_zscores(values)
            flagged = int((z > self.z_threshold).sum())
            if flagged > self.outlier_ratio * total:
                issues.append(QualityIssue(
                    kind="outlier",
                    channel=col,
                    count=flagged,
                    message=(f"{col}: {flagged}/{total} values beyond "
                             f"{self.z_threshold:g} standard deviations"),
                ))
        return issues

    # ── Fatal precondition ────────────────────────────────────────

    def require_sufficient(self, readings) -> list[SensorReading]:
        """
        Keep the complete readings and enforce the minimum row count.

        Args:
            readings: Iterable of raw dicts or SensorReadings.

        Returns:
            The valid readings as SensorReading objects.

        Raises:
            InsufficientDataError: Fewer than min_rows valid readings.
        """
        valid = []
        rejected = 0
        for record in readings:
            if isinstance(record, SensorReading):
                valid.append(record)
                continue
            try:
                valid.append(SensorReading.from_dict(record))
            except ValidationError as e:
                rejected += 1
                logger.debug(f"Rejected reading: {e}")

        if rejected:
            logger.info(f"Excluded {rejected} incomplete readings "
                        f"({len(valid)} valid remain)")

        if len(valid) < self.min_rows:
            logger.error(f"Only {len(valid)} valid readings. "
                         f"Need at least {self.min_rows} for training.")
            raise InsufficientDataError(len(valid), self.min_rows)
        return valid
