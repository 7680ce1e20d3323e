"""Retention classification of VM snapshots."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List

from .models import Classification, RetentionPolicy, Snapshot


@dataclass
class ClassifiedSnapshots:
    """Snapshots partitioned by retention outcome."""

    keep_flagged: List[Snapshot] = field(default_factory=list)
    delete_eligible: List[Snapshot] = field(default_factory=list)
    retain_in_window: List[Snapshot] = field(default_factory=list)

    @property
    def past_threshold(self) -> int:
        """Number of snapshots older than the retention window."""
        return len(self.keep_flagged) + len(self.delete_eligible)


def classify(now: datetime, policy: RetentionPolicy, snapshot: Snapshot) -> Classification:
    """Classify a single snapshot.

    The max-age ceiling is evaluated first and ignores the keep marker.
    All comparisons are strict: a snapshot exactly ``days`` (or
    ``max_days``) old has not exceeded that threshold.
    """
    age = snapshot.age(now)
    older_than_days = age > timedelta(days=policy.days)
    older_than_max = age > timedelta(days=policy.max_days)
    keep = policy.has_keep_marker(snapshot.name)

    if older_than_max:
        return Classification.DELETE_ELIGIBLE
    if older_than_days and not keep:
        return Classification.DELETE_ELIGIBLE
    if older_than_days and keep:
        return Classification.KEEP_FLAGGED
    return Classification.RETAIN_IN_WINDOW


def classify_all(now: datetime, policy: RetentionPolicy,
                 snapshots: Iterable[Snapshot]) -> ClassifiedSnapshots:
    """Partition ``snapshots`` by :func:`classify`, preserving input order."""
    policy.validate()
    result = ClassifiedSnapshots()
    buckets = {
        Classification.KEEP_FLAGGED: result.keep_flagged,
        Classification.DELETE_ELIGIBLE: result.delete_eligible,
        Classification.RETAIN_IN_WINDOW: result.retain_in_window,
    }
    for snapshot in snapshots:
        buckets[classify(now, policy, snapshot)].append(snapshot)
    return result
