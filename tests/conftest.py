from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from snapcleaner.config import Config
from snapcleaner.errors import ConnectionFailure, DeletionFailure, EnumerationFailure
from snapcleaner.models import Scope, Snapshot
from snapcleaner.platforms import SnapshotSource
from snapcleaner.utils import NotificationManager

NOW = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_snapshot(name: str, age_days: float, vm: str = "web01",
                  snapshot_id: Optional[str] = None, size_mb: float = 512.0) -> Snapshot:
    return Snapshot(
        id=snapshot_id or f"{vm}.{name}",
        vm_name=vm,
        name=name,
        created_at=NOW - timedelta(days=age_days),
        size_mb=size_mb,
        platform="fake",
    )


class FakeSource(SnapshotSource):
    """In-memory snapshot source with controllable failure modes."""

    def __init__(self, config, notifier, snapshots: Optional[List[Snapshot]] = None):
        super().__init__(config, notifier)
        self.snapshots: Dict[str, Snapshot] = {s.id: s for s in snapshots or []}
        self.fail_delete: Dict[str, str] = {}
        self.ignore_delete: set = set()
        self.slow_delete: Dict[str, float] = {}
        self.fail_enumeration_after: Optional[int] = None
        self.fail_enumeration_vms: set = set()
        self.refuse_connection = False
        self.delete_calls: List[str] = []
        self.list_calls = 0
        self.connect_calls = 0
        self.disconnect_calls = 0
        self._lock = threading.Lock()

    @property
    def platform_name(self) -> str:
        return "fake"

    @property
    def command_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    def connect(self) -> None:
        self.connect_calls += 1
        if self.refuse_connection:
            raise ConnectionFailure("fake: connection refused")
        super().connect()

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        super().disconnect()

    def list_vms(self):
        names = sorted({s.vm_name for s in self.snapshots.values()})
        return [{"name": name, "platform": "fake"} for name in names]

    def list_snapshots(self, scope: Scope) -> List[Snapshot]:
        self.list_calls += 1
        if self.fail_enumeration_after is not None and self.list_calls > self.fail_enumeration_after:
            raise EnumerationFailure(scope.name, "inventory unavailable")
        return super().list_snapshots(scope)

    def list_vm_snapshots(self, vm_name: str) -> List[Snapshot]:
        if vm_name in self.fail_enumeration_vms:
            raise EnumerationFailure(vm_name, "permission denied")
        with self._lock:
            return [s for s in self.snapshots.values() if s.vm_name == vm_name]

    def delete_snapshot(self, snapshot: Snapshot, timeout: Optional[float] = None) -> None:
        with self._lock:
            self.delete_calls.append(snapshot.id)
        if snapshot.id in self.slow_delete:
            time.sleep(self.slow_delete[snapshot.id])
        if snapshot.id in self.fail_delete:
            raise DeletionFailure(snapshot.id, self.fail_delete[snapshot.id])
        if snapshot.id in self.ignore_delete:
            return
        with self._lock:
            self.snapshots.pop(snapshot.id, None)


@pytest.fixture
def config(tmp_path, monkeypatch) -> Config:
    for var in ("SNAPCLEANER_RETENTION_DAYS", "SNAPCLEANER_RETENTION_MAX_DAYS",
                "SNAPCLEANER_KEEP_MARKER", "SNAPCLEANER_DRY_RUN",
                "SNAPCLEANER_DATACENTER", "SNAPCLEANER_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    cfg = Config()
    cfg.set('scheduler.state_file', str(tmp_path / "scheduler.json"))
    return cfg


@pytest.fixture
def notifier(config) -> NotificationManager:
    return NotificationManager(config)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def source(config, notifier) -> FakeSource:
    return FakeSource(config, notifier)
