"""Tests for post-deletion reconciliation."""

from conftest import make_snapshot
from snapcleaner.models import ExecutionResult, ExecutionStatus, Scope
from snapcleaner.reconciler import STILL_PRESENT_REASON, Reconciler

SCOPE = Scope(name="prod", vms=["web01"])


def test_absent_snapshots_are_confirmed(source, notifier):
    gone = make_snapshot("old", 40)
    survivor = make_snapshot("fresh", 1)
    source.snapshots = {survivor.id: survivor}

    outcome = Reconciler(source, notifier).reconcile(SCOPE, [ExecutionResult.deleted(gone)])

    assert [r.snapshot.id for r in outcome.confirmed] == [gone.id]
    assert outcome.failed == []
    assert [s.id for s in outcome.remaining] == [survivor.id]
    assert outcome.error is None


def test_still_present_snapshot_moves_to_failed(source, notifier):
    sticky = make_snapshot("sticky", 40)
    source.snapshots = {sticky.id: sticky}

    outcome = Reconciler(source, notifier).reconcile(SCOPE, [ExecutionResult.deleted(sticky)])

    assert outcome.confirmed == []
    assert len(outcome.failed) == 1
    assert outcome.failed[0].status is ExecutionStatus.FAILED
    assert outcome.failed[0].reason == STILL_PRESENT_REASON
    assert [s.id for s in outcome.remaining] == [sticky.id]


def test_existing_failures_pass_through(source, notifier):
    locked = make_snapshot("locked", 40)
    source.snapshots = {locked.id: locked}

    outcome = Reconciler(source, notifier).reconcile(
        SCOPE, [ExecutionResult.failed(locked, "snapshot is locked")]
    )

    assert [r.reason for r in outcome.failed] == ["snapshot is locked"]


def test_dry_run_results_are_unchanged(source, notifier):
    candidate = make_snapshot("old", 40)
    source.snapshots = {candidate.id: candidate}

    outcome = Reconciler(source, notifier).reconcile(SCOPE, [ExecutionResult.skipped(candidate)])

    assert [r.status for r in outcome.confirmed] == [ExecutionStatus.DRY_RUN_SKIPPED]
    assert outcome.failed == []
    assert [s.id for s in outcome.remaining] == [candidate.id]


def test_enumeration_failure_fails_unverified_deletions(source, notifier):
    deleted = make_snapshot("old", 40)
    skipped = make_snapshot("other", 40)
    source.fail_enumeration_after = 0

    outcome = Reconciler(source, notifier).reconcile(
        SCOPE, [ExecutionResult.deleted(deleted), ExecutionResult.skipped(skipped)]
    )

    assert [r.snapshot.id for r in outcome.failed] == [deleted.id]
    assert outcome.failed[0].reason.startswith("post-delete verification: enumeration failed")
    assert [r.snapshot.id for r in outcome.confirmed] == [skipped.id]
    assert outcome.remaining == []
    assert "inventory unavailable" in outcome.error
