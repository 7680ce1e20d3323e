"""Data models for snapshot retention cleanup."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError


def ensure_aware(value: datetime) -> datetime:
    """Return ``value`` as a timezone-aware datetime (naive means UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Snapshot:
    """A VM snapshot as observed at enumeration time."""

    id: str
    vm_name: str
    name: str
    created_at: datetime
    size_mb: float = 0.0
    vm_id: Optional[str] = None
    description: str = ""
    platform: Optional[str] = None

    def age(self, now: datetime) -> timedelta:
        """Age of the snapshot relative to ``now``."""
        return ensure_aware(now) - ensure_aware(self.created_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vm_name": self.vm_name,
            "vm_id": self.vm_id,
            "name": self.name,
            "created_at": ensure_aware(self.created_at).isoformat(),
            "size_mb": round(self.size_mb, 2),
            "description": self.description,
            "platform": self.platform,
        }


@dataclass(frozen=True)
class RetentionPolicy:
    """Age thresholds that decide which snapshots may be removed.

    Snapshots older than ``days`` are deleted unless their name carries
    ``keep_marker``; snapshots older than ``max_days`` are deleted
    regardless of the marker.
    """

    days: int
    max_days: int
    keep_marker: str = "keep"

    def validate(self) -> "RetentionPolicy":
        if self.days < 0:
            raise ConfigurationError(f"Retention days must be >= 0, got {self.days}")
        if self.days >= self.max_days:
            raise ConfigurationError(
                f"Retention days ({self.days}) must be lower than max days ({self.max_days})"
            )
        if not self.keep_marker or not self.keep_marker.strip():
            raise ConfigurationError("Keep marker must not be empty")
        return self

    def has_keep_marker(self, name: str) -> bool:
        return self.keep_marker.lower() in name.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {"days": self.days, "max_days": self.max_days, "keep_marker": self.keep_marker}


class Classification(Enum):
    """Retention outcome for a single snapshot."""

    KEEP_FLAGGED = "keep_flagged"
    DELETE_ELIGIBLE = "delete_eligible"
    RETAIN_IN_WINDOW = "retain_in_window"


class ExecutionStatus(Enum):
    """Outcome of a deletion attempt."""

    DELETED = "deleted"
    FAILED = "failed"
    DRY_RUN_SKIPPED = "dry_run_skipped"


@dataclass(frozen=True)
class ExecutionResult:
    """Per-snapshot result of the deletion pass."""

    snapshot: Snapshot
    status: ExecutionStatus
    reason: Optional[str] = None

    @property
    def would_delete(self) -> bool:
        return self.status in (ExecutionStatus.DELETED, ExecutionStatus.DRY_RUN_SKIPPED)

    @property
    def actually_deleted(self) -> bool:
        return self.status is ExecutionStatus.DELETED

    @classmethod
    def deleted(cls, snapshot: Snapshot) -> "ExecutionResult":
        return cls(snapshot, ExecutionStatus.DELETED)

    @classmethod
    def failed(cls, snapshot: Snapshot, reason: str) -> "ExecutionResult":
        return cls(snapshot, ExecutionStatus.FAILED, reason)

    @classmethod
    def skipped(cls, snapshot: Snapshot) -> "ExecutionResult":
        return cls(snapshot, ExecutionStatus.DRY_RUN_SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        data = self.snapshot.to_dict()
        data.update({
            "status": self.status.value,
            "reason": self.reason,
            "would_delete": self.would_delete,
            "actually_deleted": self.actually_deleted,
        })
        return data


@dataclass(frozen=True)
class Scope:
    """A resolved group of VMs whose snapshots are processed together."""

    name: str
    vms: List[str] = field(default_factory=list)


@dataclass
class Report:
    """Structured result of a cleanup run.

    ``deleted`` holds deleted (or, in a dry run, would-be deleted)
    snapshots, ``kept_flagged`` the ones exempted by the keep marker,
    ``failed`` every failed or unverified deletion and ``remaining`` the
    full post-run enumeration. ``deleted``, ``kept_flagged`` and ``failed``
    are disjoint; in live mode no ``deleted`` id is ever in ``remaining``.
    """

    generated_at: datetime
    dry_run: bool
    datacenter: str
    endpoint: str
    headline: str
    policy: RetentionPolicy
    deleted: List[ExecutionResult] = field(default_factory=list)
    kept_flagged: List[Snapshot] = field(default_factory=list)
    failed: List[ExecutionResult] = field(default_factory=list)
    remaining: List[Snapshot] = field(default_factory=list)
    message: Optional[str] = None
    scope_errors: List[str] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def remaining_total(self) -> int:
        return len(self.remaining)

    @property
    def deleted_size_mb(self) -> float:
        return sum(result.snapshot.size_mb for result in self.deleted)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.scope_errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": ensure_aware(self.generated_at).isoformat(),
            "dry_run": self.dry_run,
            "datacenter": self.datacenter,
            "endpoint": self.endpoint,
            "headline": self.headline,
            "message": self.message,
            "policy": self.policy.to_dict(),
            "summary": {
                "deleted": self.deleted_count,
                "deleted_size_mb": round(self.deleted_size_mb, 2),
                "kept_flagged": len(self.kept_flagged),
                "failed": self.failed_count,
                "remaining_total": self.remaining_total,
            },
            "deleted": [result.to_dict() for result in self.deleted],
            "kept_flagged": [snapshot.to_dict() for snapshot in self.kept_flagged],
            "failed": [result.to_dict() for result in self.failed],
            "remaining": [snapshot.to_dict() for snapshot in self.remaining],
            "scope_errors": list(self.scope_errors),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)
