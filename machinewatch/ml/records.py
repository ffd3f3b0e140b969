"""
records.py — Bounded Anomaly Record Log
========================================

Keeps the most recent AnomalyRecords, newest first, capped at
config.ANOMALY_LOG_CAPACITY, in a JSON file the dashboard reads for its
anomaly list, audit trail and CSV export.

Also answers the two questions the dashboard asks of that list:
    filter()         — by machine, date range and minimum severity
    machine_stats()  — per-machine count, mean risk, critical count and
                       latest anomaly
"""

import json
import logging
import os
import threading
from datetime import datetime

import pandas as pd

from . import config
from .schemas import AnomalyRecord, parse_timestamp

logger = logging.getLogger("ml.records")

_SEVERITY_RANK = {name: i for i, name in enumerate(config.SEVERITY_LEVELS)}


class AnomalyLog:
    """
    Newest-first, capacity-bounded list of AnomalyRecords.

    Args:
        path: JSON file backing the log.  None keeps it in memory only.
        capacity: Maximum records retained.
    """

    def __init__(self, path: str = None, capacity: int = None):
        self.path = path
        self.capacity = capacity if capacity is not None else config.ANOMALY_LOG_CAPACITY
        if self.capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {self.capacity}")
        self._lock = threading.Lock()
        self._records: list[AnomalyRecord] = self._load()

    def _load(self) -> list[AnomalyRecord]:
        if not self.path or not os.path.isfile(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return [AnomalyRecord.from_dict(item) for item in data][:self.capacity]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable anomaly log at {self.path}: {e}")
            return []

    def _flush(self) -> None:
        if not self.path:
            return
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([r.to_dict() for r in self._records], f)
        os.replace(tmp_path, self.path)

    def append(self, record: AnomalyRecord) -> None:
        self.extend([record])

    def extend(self, records: list[AnomalyRecord]) -> None:
        """Add records (given oldest first) so the newest ends up on top."""
        if not records:
            return
        with self._lock:
            self._records = (list(reversed(records)) + self._records)[:self.capacity]
            self._flush()
        logger.debug(f"Anomaly log now holds {len(self._records)} records")

    def records(self) -> list[AnomalyRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records = []
            self._flush()

    def filter(self,
               machine_id: str = None,
               date_from: datetime = None,
               date_to: datetime = None,
               min_severity: str = None,
               max_results: int = None) -> list[AnomalyRecord]:
        """
        Records matching every given criterion, newest first.

        Args:
            machine_id: Only this machine.
            date_from / date_to: Inclusive timestamp bounds (datetime or
                ISO-8601 string).
            min_severity: Only records at or above this severity.
            max_results: Truncate the result.
        """
        if min_severity is not None and min_severity not in _SEVERITY_RANK:
            raise ValueError(f"Unknown severity {min_severity!r}")

        lower = parse_timestamp(date_from) if date_from is not None else None
        upper = parse_timestamp(date_to) if date_to is not None else None

        result = []
        for record in self.records():
            if machine_id is not None and record.machine_id != machine_id:
                continue
            if lower is not None and record.timestamp < lower:
                continue
            if upper is not None and record.timestamp > upper:
                continue
            if (min_severity is not None
                    and _SEVERITY_RANK[record.severity] < _SEVERITY_RANK[min_severity]):
                continue
            result.append(record)

        if max_results is not None:
            result = result[:max_results]
        return result

    def machine_stats(self) -> list[dict]:
        """Per-machine summary, busiest machine first."""
        records = self.records()
        if not records:
            return []

        df = pd.DataFrame({
            "machine": [r.machine_id for r in records],
            "risk_score": [r.risk_score for r in records],
            "critical": [r.severity == "critical" for r in records],
            "timestamp": [r.timestamp for r in records],
        })
        summary = df.groupby("machine").agg(
            count=("risk_score", "size"),
            averageRiskScore=("risk_score", "mean"),
            criticalCount=("critical", "sum"),
            latestAnomaly=("timestamp", "max"),
        ).reset_index().sort_values(["count", "machine"], ascending=[False, True])

        return [
            {
                "machine": row["machine"],
                "count": int(row["count"]),
                "averageRiskScore": round(float(row["averageRiskScore"]), 2),
                "criticalCount": int(row["criticalCount"]),
                "latestAnomaly": pd.Timestamp(row["latestAnomaly"]).isoformat(),
            }
            for row in summary.to_dict("records")
        ]
