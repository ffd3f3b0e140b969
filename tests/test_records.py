"""Tests for the bounded anomaly log."""

from datetime import timedelta

import pytest

from machinewatch.ml.records import AnomalyLog
from machinewatch.ml.schemas import AnomalyRecord

from conftest import START


def _record(i, machine="press-01", severity="low", risk=10):
    return AnomalyRecord(
        id=f"anomaly-{i:04d}",
        timestamp=START + timedelta(minutes=i),
        machine_id=machine,
        risk_score=risk,
        reconstruction_error=risk / 500,
        severity=severity,
        factors=["unusual pattern detected"],
        raw_data={"temperature": 70.0},
        prediction=[0.5] * 6,
    )


class TestAnomalyLog:

    def test_newest_first(self, anomaly_log):
        anomaly_log.append(_record(1))
        anomaly_log.append(_record(2))
        anomaly_log.extend([_record(3), _record(4)])

        assert [r.id for r in anomaly_log.records()] == [
            "anomaly-0004", "anomaly-0003", "anomaly-0002", "anomaly-0001",
        ]

    def test_capacity(self, tmp_path):
        log = AnomalyLog(str(tmp_path / "log.json"), capacity=5)
        log.extend([_record(i) for i in range(12)])

        assert len(log) == 5
        assert log.records()[0].id == "anomaly-0011"
        assert log.records()[-1].id == "anomaly-0007"

    def test_persisted_between_instances(self, tmp_path):
        path = str(tmp_path / "log.json")
        AnomalyLog(path).extend([_record(1), _record(2, severity="high", risk=100)])

        reloaded = AnomalyLog(path)

        assert [r.id for r in reloaded.records()] == ["anomaly-0002", "anomaly-0001"]
        assert reloaded.records()[0].severity == "high"
        assert reloaded.records()[0].timestamp == START + timedelta(minutes=2)

    def test_unreadable_file_starts_empty(self, tmp_path):
        path = tmp_path / "log.json"
        path.write_text("{broken")
        assert len(AnomalyLog(str(path))) == 0

    def test_in_memory(self):
        log = AnomalyLog()
        log.append(_record(1))
        log.clear()
        assert log.records() == []

    def test_zero_capacity_keeps_nothing(self):
        log = AnomalyLog(capacity=0)
        log.extend([_record(1), _record(2)])
        assert log.capacity == 0
        assert len(log) == 0

    def test_negative_capacity(self):
        with pytest.raises(ValueError):
            AnomalyLog(capacity=-1)


class TestFilter:

    @pytest.fixture
    def populated(self, anomaly_log):
        anomaly_log.extend([
            _record(1, machine="a", severity="low"),
            _record(2, machine="b", severity="medium", risk=60),
            _record(3, machine="a", severity="high", risk=100),
            _record(4, machine="a", severity="medium", risk=70),
        ])
        return anomaly_log

    def test_by_machine(self, populated):
        assert [r.id for r in populated.filter(machine_id="a")] == [
            "anomaly-0004", "anomaly-0003", "anomaly-0001",
        ]

    def test_by_min_severity(self, populated):
        ids = [r.id for r in populated.filter(min_severity="medium")]
        assert ids == ["anomaly-0004", "anomaly-0003", "anomaly-0002"]

    def test_by_date_range(self, populated):
        records = populated.filter(
            date_from=START + timedelta(minutes=2),
            date_to=(START + timedelta(minutes=3)).isoformat(),
        )
        assert [r.id for r in records] == ["anomaly-0003", "anomaly-0002"]

    def test_max_results(self, populated):
        assert len(populated.filter(max_results=2)) == 2

    def test_unknown_severity(self, populated):
        with pytest.raises(ValueError):
            populated.filter(min_severity="catastrophic")


class TestMachineStats:

    def test_summary(self, anomaly_log):
        anomaly_log.extend([
            _record(1, machine="a", risk=10),
            _record(2, machine="b", risk=50),
            _record(3, machine="a", risk=30, severity="critical"),
        ])

        stats = anomaly_log.machine_stats()

        assert [s["machine"] for s in stats] == ["a", "b"]
        assert stats[0]["count"] == 2
        assert stats[0]["averageRiskScore"] == 20.0
        assert stats[0]["criticalCount"] == 1
        assert stats[0]["latestAnomaly"].startswith("2024-03-01T08:03:00")
        assert stats[1]["criticalCount"] == 0

    def test_empty(self, anomaly_log):
        assert anomaly_log.machine_stats() == []
