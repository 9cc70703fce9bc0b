# tests/test_task_mapper.py

from __future__ import annotations

import pytest

from scandash.tasks.task_mapper import (
    from_snapshot_record,
    from_stream_summary,
    normalize_status,
)
from scandash.tasks.task_models import TaskStatus

NOW = 1_700_000_000.0


@pytest.mark.parametrize(
    "raw",
    [None, 42, "x", [], {}, {"id": ""}, {"taskid": None}, {"id": True}],
)
def test_mappers_are_total_and_reject_records_without_id(raw) -> None:
    assert from_snapshot_record(raw, now=NOW) is None
    assert from_stream_summary(raw, now=NOW) is None


def test_deleted_status_maps_to_none() -> None:
    assert from_stream_summary({"taskid": "t1", "status": "deleted"}, now=NOW) is None
    assert from_snapshot_record({"id": "t1", "status": "Deleted"}, now=NOW) is None


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("running", TaskStatus.RUNNING),
        ("RUNNING_RECON", TaskStatus.RUNNING_RECON),
        ("task_done", TaskStatus.COMPLETE),
        ("completed", TaskStatus.COMPLETE),
        ("error", TaskStatus.FAILED),
        ("nonsense", None),
        (None, None),
        (3, None),
    ],
)
def test_normalize_status(raw, expected) -> None:
    assert normalize_status(raw) == expected


def test_snapshot_record_derives_remaining_and_progress() -> None:
    t = from_snapshot_record(
        {"id": "t1", "name": "scan", "status": "running", "found": 4, "target": "10", "file": "a.txt"},
        now=NOW,
    )
    assert t is not None
    assert t.target_total == 10
    assert t.remaining == 6
    assert t.progress_percent == 40
    assert t.file == "a.txt"


def test_remaining_never_negative_and_progress_clamped() -> None:
    t = from_snapshot_record({"id": "t1", "status": "running", "found": 15, "target": "10"}, now=NOW)
    assert t is not None
    assert t.remaining == 0
    assert t.progress_percent == 100


def test_stream_summary_accepts_misspelled_remaining() -> None:
    t = from_stream_summary({"taskid": "t1", "status": "running", "remainng": 7}, now=NOW)
    assert t is not None
    assert t.remaining == 7


def test_stream_summary_fields() -> None:
    t = from_stream_summary(
        {
            "taskid": "t1",
            "taskname": "My scan",
            "status": "running",
            "success": 3,
            "websites_total": 20,
            "progress_ratio": 0.25,
            "eta_seconds": 120,
        },
        now=NOW,
    )
    assert t is not None
    assert t.name == "My scan"
    assert t.found == 3
    assert t.target_total == 20
    assert t.remaining == 17
    assert t.progress_percent == 25
    assert t.eta_seconds == 120
    assert t.eta_synced_at == NOW


def test_malformed_numbers_fall_back_to_existing_values() -> None:
    existing = from_stream_summary({"taskid": "t1", "status": "running", "success": 5}, now=NOW)
    t = from_stream_summary({"taskid": "t1", "success": "lots", "eta_seconds": "soon"}, existing, now=NOW)
    assert t is not None
    assert t.found == 5
    assert t.status == TaskStatus.RUNNING
    assert t.eta_seconds is None


def test_missing_name_defaults_to_id_and_status_to_pending() -> None:
    t = from_stream_summary({"taskid": "t9"}, now=NOW)
    assert t is not None
    assert t.name == "t9"
    assert t.status == TaskStatus.PENDING


def test_updated_at_accepts_ms_and_iso() -> None:
    a = from_stream_summary({"taskid": "t1", "updated_at": 1_700_000_000_000}, now=NOW)
    b = from_stream_summary({"taskid": "t1", "updated_at": "2023-11-14T22:13:20Z"}, now=NOW)
    assert a is not None and b is not None
    assert a.updated_at == pytest.approx(1_700_000_000.0)
    assert b.updated_at == pytest.approx(1_700_000_000.0)
