"""
sources.py — File-Backed Reading Source
========================================

Loads historical readings from a CSV or JSON export and serves them
through the reading-source interface the pipeline consumes:

    get_data(start=None, end=None, machine_id=None) → [SensorReading, ...]

Exports come from several plant historians with their own column names,
so each canonical field accepts a set of aliases (e.g. "rpm" or "speed"
for rotation).  Rows that fail validation are skipped and counted rather
than aborting the whole import.
"""

import json
import logging
import os

import pandas as pd

from . import config
from .errors import ValidationError
from .schemas import SensorReading, parse_timestamp

logger = logging.getLogger("ml.sources")

# Canonical field → accepted alternative column names (case-insensitive).
COLUMN_ALIASES = {
    "timestamp": ["time", "date", "datetime"],
    "machine": ["machineid", "machine_id", "device", "equipment"],
    "temperature": ["temp", "temperature_c"],
    "pressure": ["press", "pressure_bar"],
    "vibration": ["vib", "vibration_level"],
    "rotation": ["rpm", "speed", "rotation_speed"],
    "current": ["amp", "amperage", "current_a"],
    "voltage": ["volt", "voltage_v"],
}


def resolve_columns(columns) -> dict:
    """
    Map canonical field names to the columns present in an export.

    Returns:
        Dict canonical name → actual column name, for every field found.
    """
    lookup = {str(c).strip().lower(): c for c in columns}
    mapping = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        for candidate in [canonical, *aliases]:
            if candidate in lookup:
                mapping[canonical] = lookup[candidate]
                break
    return mapping


def read_export(path: str) -> pd.DataFrame:
    """
    Read a CSV or JSON export into a DataFrame with canonical columns.

    Raises:
        ValidationError: Unsupported file type, or machine / a channel
            column cannot be found.
    """
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        df = pd.read_csv(path)
    elif ext == ".json":
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        if isinstance(payload, dict):
            payload = payload.get("data") or payload.get("readings") or []
        df = pd.DataFrame(payload)
    else:
        raise ValidationError(f"Unsupported file type '{ext}'. Use CSV or JSON.")

    mapping = resolve_columns(df.columns)
    required = ["machine", "timestamp", *config.CHANNELS]
    missing = [name for name in required if name not in mapping]
    if missing:
        raise ValidationError(f"Export {path} has no column for: {missing}")

    df = df[[mapping[name] for name in required]]
    df.columns = required
    logger.info(f"Read {len(df)} rows from {path}")
    return df


class FileReadingSource:
    """
    Reading source over a single export file.

    Usage:
        source = FileReadingSource("history.csv")
        readings = source.get_data(machine_id="press-01")
    """

    def __init__(self, path: str):
        self.path = path

    def get_data(self, start=None, end=None, machine_id: str = None) -> list[SensorReading]:
        """
        Valid readings in chronological order.

        Args:
            start / end: Optional inclusive bounds (datetime or ISO string).
            machine_id: Only readings from this machine.
        """
        df = read_export(self.path)
        lower = parse_timestamp(start) if start is not None else None
        upper = parse_timestamp(end) if end is not None else None

        readings = []
        skipped = 0
        for row in df.to_dict("records"):
            try:
                reading = SensorReading.from_dict(row)
            except ValidationError as e:
                skipped += 1
                logger.debug(f"Skipping row: {e}")
                continue
            if machine_id is not None and reading.machine_id != str(machine_id):
                continue
            if lower is not None and reading.timestamp < lower:
                continue
            if upper is not None and reading.timestamp > upper:
                continue
            readings.append(reading)

        if skipped:
            logger.warning(f"Skipped {skipped} invalid rows from {self.path}")

        readings.sort(key=lambda r: r.timestamp)
        return readings
