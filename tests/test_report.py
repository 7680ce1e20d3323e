"""Tests for report aggregation and rendering."""

import dataclasses
import json

from conftest import NOW, make_snapshot
from snapcleaner.models import ExecutionResult, RetentionPolicy
from snapcleaner.report import ReportBuilder, render_text

POLICY = RetentionPolicy(days=15, max_days=30)


def build(**overrides):
    kwargs = dict(
        generated_at=NOW, dry_run=False, datacenter="DC1", endpoint="vc01",
        policy=POLICY, kept_flagged=[], deleted=[], failed=[], remaining=[],
        past_threshold=0,
    )
    kwargs.update(overrides)
    return ReportBuilder().build(**kwargs)


class TestHeadline:
    def test_live_deletions(self):
        report = build(deleted=[ExecutionResult.deleted(make_snapshot("a", 20))], past_threshold=1)
        assert report.headline == "Snapshots deleted in datacenter DC1 (vc01)"
        assert report.message is None

    def test_dry_run_deletions(self):
        report = build(dry_run=True, deleted=[ExecutionResult.skipped(make_snapshot("a", 20))],
                       past_threshold=1)
        assert report.headline == "Snapshots that would have been deleted in datacenter DC1 (vc01)"

    def test_nothing_deleted(self):
        report = build(kept_flagged=[make_snapshot("keep", 20)], past_threshold=1)
        assert report.headline == "No snapshots were deleted in datacenter DC1 (vc01)"
        assert report.message is None

    def test_nothing_found_message(self):
        report = build(remaining=[make_snapshot("fresh", 1)])
        assert report.message == "No snapshots older than 15 days were found."
        assert report.headline.startswith("No snapshots were deleted")

    def test_no_nothing_found_message_when_no_scope_was_enumerated(self):
        report = build(scopes_enumerated=0, scope_errors=["prod: inventory unavailable"])
        assert report.message is None
        assert report.scope_errors == ["prod: inventory unavailable"]


def test_live_deleted_snapshot_still_remaining_becomes_failed():
    sticky = make_snapshot("sticky", 40)
    gone = make_snapshot("gone", 40)
    report = build(
        deleted=[ExecutionResult.deleted(sticky), ExecutionResult.deleted(gone)],
        remaining=[sticky],
        past_threshold=2,
    )

    assert [r.snapshot.id for r in report.deleted] == [gone.id]
    assert [r.snapshot.id for r in report.failed] == [sticky.id]
    deleted_ids = {r.snapshot.id for r in report.deleted}
    assert deleted_ids.isdisjoint(s.id for s in report.remaining)


def test_dry_run_keeps_would_delete_in_remaining():
    candidate = make_snapshot("old", 40)
    report = build(dry_run=True, deleted=[ExecutionResult.skipped(candidate)],
                   remaining=[candidate], past_threshold=1)

    assert report.deleted_count == 1
    assert report.failed == []
    assert report.remaining_total == 1


def test_report_is_deterministic_and_sorted():
    a = make_snapshot("a", 20, vm="web02")
    b = make_snapshot("b", 25, vm="web01")
    first = build(deleted=[ExecutionResult.deleted(a), ExecutionResult.deleted(b)], past_threshold=2)
    second = build(deleted=[ExecutionResult.deleted(b), ExecutionResult.deleted(a)], past_threshold=2)

    assert first.to_dict() == second.to_dict()
    assert [r.snapshot.vm_name for r in first.deleted] == ["web01", "web02"]


def test_to_json_contains_summary_and_flags():
    deleted = make_snapshot("old", 40, size_mb=1024)
    failed = make_snapshot("locked", 40)
    report = build(
        deleted=[ExecutionResult.deleted(deleted)],
        failed=[ExecutionResult.failed(failed, "locked")],
        remaining=[failed],
        past_threshold=2,
        scope_errors=["lab: permission denied"],
    )

    data = json.loads(report.to_json())

    assert data["summary"] == {
        "deleted": 1,
        "deleted_size_mb": 1024.0,
        "kept_flagged": 0,
        "failed": 1,
        "remaining_total": 1,
    }
    assert data["deleted"][0]["actually_deleted"] is True
    assert data["deleted"][0]["would_delete"] is True
    assert data["failed"][0]["reason"] == "locked"
    assert data["scope_errors"] == ["lab: permission denied"]
    assert data["policy"] == {"days": 15, "max_days": 30, "keep_marker": "keep"}
    assert report.ok is False


def test_render_text_lists_sections():
    report = build(
        dry_run=True,
        deleted=[ExecutionResult.skipped(make_snapshot("nightly", 20))],
        kept_flagged=[make_snapshot("keep-me", 20)],
        past_threshold=2,
    )

    text = render_text(report)

    assert "Would delete (1):" in text
    assert "Kept (keep marker) (1):" in text
    assert "nightly" in text and "keep-me" in text
    assert "Failed (" not in text


def test_render_text_nothing_found():
    text = render_text(build())
    assert "No snapshots older than 15 days were found." in text


def test_sorting_accepts_naive_and_aware_timestamps():
    aware = make_snapshot("aware", 20)
    naive = make_snapshot("naive", 25)
    naive = dataclasses.replace(naive, created_at=naive.created_at.replace(tzinfo=None))

    report = build(
        deleted=[ExecutionResult.deleted(aware), ExecutionResult.deleted(naive)],
        remaining=[aware, naive],
        dry_run=True,
        past_threshold=2,
    )

    assert [r.snapshot.name for r in report.deleted] == ["naive", "aware"]
    assert [s.name for s in report.remaining] == ["naive", "aware"]
