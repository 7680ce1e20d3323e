"""Cleanup pipeline: enumerate, classify, delete, reconcile, report."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Union

from .classifier import classify_all
from .errors import EnumerationFailure
from .executor import DeletionExecutor
from .models import ExecutionResult, Report, RetentionPolicy, Scope, Snapshot
from .platforms import SnapshotSource
from .reconciler import Reconciler
from .report import ReportBuilder
from .utils import NotificationManager

ScopeSpec = Union[Iterable[Scope], Callable[[SnapshotSource], Iterable[Scope]]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _RunState:
    kept_flagged: List[Snapshot] = field(default_factory=list)
    deleted: List[ExecutionResult] = field(default_factory=list)
    failed: List[ExecutionResult] = field(default_factory=list)
    remaining: List[Snapshot] = field(default_factory=list)
    past_threshold: int = 0
    scopes_enumerated: int = 0
    scope_errors: List[str] = field(default_factory=list)


class CleanupEngine:
    """Runs retention cleanup over one or more scopes.

    Each scope goes through the same stages in order: enumerate,
    classify, delete, then reconcile once every deletion has finished.
    A scope whose snapshots cannot be listed is skipped and recorded in
    the report; the other scopes still run.
    """

    def __init__(self, source: SnapshotSource, policy: RetentionPolicy,
                 notifier: NotificationManager,
                 clock: Optional[Callable[[], datetime]] = None,
                 max_workers: int = 4, timeout: float = 300.0,
                 datacenter: str = "default", endpoint: Optional[str] = None):
        self.source = source
        self.policy = policy.validate()
        self.notifier = notifier
        self.clock = clock or utc_now
        self.datacenter = datacenter
        self.endpoint = endpoint or source.platform_name
        self.executor = DeletionExecutor(source, notifier, max_workers=max_workers, timeout=timeout)
        self.reconciler = Reconciler(source, notifier)
        self.builder = ReportBuilder(notifier)

    def run(self, scopes: ScopeSpec, dry_run: bool = True) -> Report:
        """Run the cleanup and return the report.

        ``scopes`` is either a list of scopes or a callable resolving them
        from the connected source. The source connection is held for the
        whole run and released on every exit path. Connection and
        inventory failures propagate.
        """
        now = self.clock()
        state = _RunState()
        mode = "dry run" if dry_run else "live"
        self.notifier.info(
            f"Starting snapshot cleanup ({mode}) in datacenter {self.datacenter}: "
            f"delete after {self.policy.days}d, hard limit {self.policy.max_days}d"
        )

        with self.source:
            resolved = scopes(self.source) if callable(scopes) else scopes
            for scope in resolved:
                self._run_scope(scope, now, dry_run, state)

        report = self.builder.build(
            generated_at=now,
            dry_run=dry_run,
            datacenter=self.datacenter,
            endpoint=self.endpoint,
            policy=self.policy,
            kept_flagged=state.kept_flagged,
            deleted=state.deleted,
            failed=state.failed,
            remaining=state.remaining,
            past_threshold=state.past_threshold,
            scope_errors=state.scope_errors,
            scopes_enumerated=state.scopes_enumerated,
        )

        if report.ok:
            self.notifier.success(report.headline)
        else:
            self.notifier.failure(
                f"{report.headline}: {report.failed_count} failed, "
                f"{len(report.scope_errors)} scope errors"
            )
        return report

    def _run_scope(self, scope: Scope, now: datetime, dry_run: bool, state: _RunState) -> None:
        try:
            snapshots = self.source.list_snapshots(scope)
        except EnumerationFailure as e:
            self.notifier.failure(f"Skipping scope '{scope.name}': {e.message}")
            state.scope_errors.append(str(e))
            return

        state.scopes_enumerated += 1
        classified = classify_all(now, self.policy, snapshots)
        self.notifier.info(
            f"Scope '{scope.name}': {len(snapshots)} snapshots, "
            f"{len(classified.delete_eligible)} eligible for deletion, "
            f"{len(classified.keep_flagged)} kept by marker"
        )
        state.kept_flagged.extend(classified.keep_flagged)
        state.past_threshold += classified.past_threshold

        results = self.executor.execute(classified.delete_eligible, dry_run)
        outcome = self.reconciler.reconcile(scope, results)

        state.deleted.extend(outcome.confirmed)
        state.failed.extend(outcome.failed)
        state.remaining.extend(outcome.remaining)
        if outcome.error:
            state.scope_errors.append(outcome.error)
