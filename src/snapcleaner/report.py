"""Report aggregation and plain-text rendering."""

from datetime import datetime
from typing import List, Optional, Sequence

from .models import ExecutionResult, Report, RetentionPolicy, Snapshot, ensure_aware
from .utils import NotificationManager, format_age, format_size_mb


def _snapshot_key(snapshot: Snapshot):
    return (snapshot.vm_name, ensure_aware(snapshot.created_at), snapshot.id)


def _result_key(result: ExecutionResult):
    return _snapshot_key(result.snapshot)


def headline_for(deleted: Sequence[ExecutionResult], dry_run: bool,
                 datacenter: str, endpoint: str) -> str:
    """Pick the report headline for the outcome of a run."""
    where = f"in datacenter {datacenter} ({endpoint})"
    if deleted and dry_run:
        return f"Snapshots that would have been deleted {where}"
    if deleted:
        return f"Snapshots deleted {where}"
    return f"No snapshots were deleted {where}"


class ReportBuilder:
    """Aggregates classification and deletion results into a Report."""

    def __init__(self, notifier: Optional[NotificationManager] = None):
        self.notifier = notifier

    def build(self, generated_at: datetime, dry_run: bool, datacenter: str, endpoint: str,
              policy: RetentionPolicy,
              kept_flagged: Sequence[Snapshot],
              deleted: Sequence[ExecutionResult],
              failed: Sequence[ExecutionResult],
              remaining: Sequence[Snapshot],
              past_threshold: int,
              scope_errors: Sequence[str] = (),
              scopes_enumerated: int = 1) -> Report:
        """Build the report.

        In live mode a snapshot reported as deleted that is also part of
        ``remaining`` is moved to ``failed``. The "nothing found" message is only set
        when at least one scope was enumerated.
        """
        deleted_final: List[ExecutionResult] = []
        failed_final: List[ExecutionResult] = list(failed)

        remaining_ids = {snapshot.id for snapshot in remaining}
        for result in deleted:
            if not dry_run and result.snapshot.id in remaining_ids:
                if self.notifier:
                    self.notifier.warning(
                        f"Snapshot '{result.snapshot.name}' reported deleted but still present"
                    )
                failed_final.append(ExecutionResult.failed(
                    result.snapshot, "post-delete verification: still present"
                ))
            else:
                deleted_final.append(result)

        message = None
        if past_threshold == 0 and scopes_enumerated > 0:
            message = f"No snapshots older than {policy.days} days were found."

        return Report(
            generated_at=generated_at,
            dry_run=dry_run,
            datacenter=datacenter,
            endpoint=endpoint,
            headline=headline_for(deleted_final, dry_run, datacenter, endpoint),
            policy=policy,
            deleted=sorted(deleted_final, key=_result_key),
            kept_flagged=sorted(kept_flagged, key=_snapshot_key),
            failed=sorted(failed_final, key=_result_key),
            remaining=sorted(remaining, key=_snapshot_key),
            message=message,
            scope_errors=list(scope_errors),
        )


def _snapshot_row(snapshot: Snapshot, now: datetime, extra: str = "") -> str:
    row = (f"{snapshot.vm_name[:20]:<21} {snapshot.name[:28]:<29} "
           f"{format_age(snapshot.age(now)):<8} {format_size_mb(snapshot.size_mb):<10}")
    return f"{row} {extra}".rstrip()


def render_text(report: Report) -> str:
    """Render a report as plain-text tables."""
    now = report.generated_at
    lines = [report.headline, "=" * 80]
    mode = "dry run" if report.dry_run else "live"
    lines.append(
        f"Mode: {mode}   Policy: delete after {report.policy.days}d, "
        f"hard limit {report.policy.max_days}d, keep marker '{report.policy.keep_marker}'"
    )

    if report.message:
        lines.append("")
        lines.append(report.message)

    header = f"{'VM':<21} {'Snapshot':<29} {'Age':<8} {'Size':<10}"
    title = "Would delete" if report.dry_run else "Deleted"
    sections = [
        (title, [_snapshot_row(r.snapshot, now) for r in report.deleted]),
        ("Kept (keep marker)", [_snapshot_row(s, now) for s in report.kept_flagged]),
        ("Failed", [_snapshot_row(r.snapshot, now, r.reason or "") for r in report.failed]),
    ]
    for name, rows in sections:
        if not rows:
            continue
        lines.extend(["", f"{name} ({len(rows)}):", "-" * 80, header, "-" * 80])
        lines.extend(rows)

    if report.scope_errors:
        lines.extend(["", f"Scope errors ({len(report.scope_errors)}):"])
        lines.extend(f"  - {error}" for error in report.scope_errors)

    lines.extend([
        "",
        f"Total {title.lower()}: {report.deleted_count} "
        f"({format_size_mb(report.deleted_size_mb)})",
        f"Failed: {report.failed_count}",
        f"Snapshots remaining: {report.remaining_total}",
    ])
    return "\n".join(lines)
