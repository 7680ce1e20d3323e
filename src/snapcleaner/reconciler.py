"""Post-deletion verification against a fresh snapshot enumeration."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .errors import EnumerationFailure
from .models import ExecutionResult, ExecutionStatus, Scope, Snapshot
from .platforms import SnapshotSource
from .utils import NotificationManager

STILL_PRESENT_REASON = "post-delete verification: still present"


@dataclass
class ReconciliationOutcome:
    """Results of a deletion pass after verification."""

    confirmed: List[ExecutionResult] = field(default_factory=list)
    failed: List[ExecutionResult] = field(default_factory=list)
    remaining: List[Snapshot] = field(default_factory=list)
    error: Optional[str] = None


class Reconciler:
    """Re-enumerates a scope and checks claimed deletions really happened."""

    def __init__(self, source: SnapshotSource, notifier: NotificationManager):
        self.source = source
        self.notifier = notifier

    def reconcile(self, scope: Scope, results: Sequence[ExecutionResult]) -> ReconciliationOutcome:
        """Verify ``results`` against the live state of ``scope``.

        Deleted snapshots that are still listed move to failed. Dry-run
        results are passed through unchanged. The post-run snapshot set is
        returned as ``remaining``.
        """
        outcome = ReconciliationOutcome()

        try:
            current = self.source.list_snapshots(scope)
        except EnumerationFailure as e:
            reason = f"post-delete verification: enumeration failed: {e.message}"
            self.notifier.error(f"Cannot verify deletions in scope '{scope.name}': {e.message}")
            outcome.error = str(e)
            for result in results:
                if result.status is ExecutionStatus.DELETED:
                    outcome.failed.append(ExecutionResult.failed(result.snapshot, reason))
                elif result.status is ExecutionStatus.FAILED:
                    outcome.failed.append(result)
                else:
                    outcome.confirmed.append(result)
            return outcome

        present = {snapshot.id for snapshot in current}
        outcome.remaining = list(current)

        for result in results:
            if result.status is ExecutionStatus.FAILED:
                outcome.failed.append(result)
            elif result.status is ExecutionStatus.DELETED and result.snapshot.id in present:
                self.notifier.failure(
                    f"Snapshot '{result.snapshot.name}' of VM '{result.snapshot.vm_name}' "
                    f"is still present after deletion"
                )
                outcome.failed.append(ExecutionResult.failed(result.snapshot, STILL_PRESENT_REASON))
            else:
                outcome.confirmed.append(result)

        verified = sum(1 for result in outcome.confirmed if result.actually_deleted)
        self.notifier.info(
            f"Scope '{scope.name}': {verified} deletions verified, "
            f"{len(outcome.remaining)} snapshots remaining"
        )
        return outcome
