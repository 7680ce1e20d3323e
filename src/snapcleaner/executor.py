"""Concurrent snapshot deletion with per-snapshot failure isolation."""

import subprocess
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, List, Sequence, Set

from .models import ExecutionResult, Snapshot
from .platforms import SnapshotSource
from .utils import NotificationManager

TIMEOUT_REASON = "timeout"


class DeletionExecutor:
    """Deletes delete-eligible snapshots, one isolated attempt per snapshot."""

    def __init__(self, source: SnapshotSource, notifier: NotificationManager,
                 max_workers: int = 4, timeout: float = 300.0,
                 poll_interval: float = 0.5):
        """Initialize the executor.

        Args:
            source: Snapshot source providing the deletion primitive
            notifier: Notification manager instance
            max_workers: Size of the worker pool
            timeout: Seconds a single deletion may take before it is failed
            poll_interval: Seconds between timeout checks
        """
        self.source = source
        self.notifier = notifier
        self.max_workers = max(1, max_workers)
        self.timeout = timeout
        self.poll_interval = poll_interval

    def execute(self, snapshots: Sequence[Snapshot], dry_run: bool) -> List[ExecutionResult]:
        """Attempt deletion of every snapshot.

        Returns one result per snapshot, in input order, once every attempt
        has finished or timed out.
        """
        if not snapshots:
            return []
        if dry_run:
            return [self._skip(snapshot) for snapshot in snapshots]
        return self._execute_live(list(snapshots))

    def _skip(self, snapshot: Snapshot) -> ExecutionResult:
        self.notifier.info(
            f"[dry run] Would delete snapshot '{snapshot.name}' of VM '{snapshot.vm_name}'"
        )
        return ExecutionResult.skipped(snapshot)

    def _attempt(self, snapshot: Snapshot, index: int, abandoned: Set[int]) -> ExecutionResult:
        try:
            self.source.delete_snapshot(snapshot, timeout=self.timeout)
        except (TimeoutError, subprocess.TimeoutExpired):
            if index not in abandoned:
                self.notifier.failure(
                    f"Timed out deleting snapshot '{snapshot.name}' of VM '{snapshot.vm_name}'"
                )
            return ExecutionResult.failed(snapshot, TIMEOUT_REASON)
        except Exception as e:
            reason = str(e) or type(e).__name__
            if index in abandoned:
                self.notifier.debug(
                    f"Abandoned deletion of snapshot '{snapshot.name}' failed late: {reason}"
                )
            else:
                self.notifier.failure(
                    f"Failed to delete snapshot '{snapshot.name}' of VM '{snapshot.vm_name}': {reason}"
                )
            return ExecutionResult.failed(snapshot, reason)

        if index in abandoned:
            # Already recorded as a timeout; reconciliation reports the real state.
            self.notifier.warning(
                f"Snapshot '{snapshot.name}' of VM '{snapshot.vm_name}' finished deleting after timeout"
            )
        else:
            self.notifier.success(f"Deleted snapshot '{snapshot.name}' of VM '{snapshot.vm_name}'")
        return ExecutionResult.deleted(snapshot)

    def _execute_live(self, snapshots: List[Snapshot]) -> List[ExecutionResult]:
        """Run deletions with at most ``max_workers`` live calls in flight.

        A call past its timeout is abandoned and stops counting against the
        limit, so hung calls never keep queued snapshots from starting.
        """
        self.notifier.info(
            f"Deleting {len(snapshots)} snapshots with {self.max_workers} workers"
        )
        queue = deque(range(len(snapshots)))
        in_flight: Dict[Future, int] = {}
        submitted_at: Dict[int, float] = {}
        abandoned: Set[int] = set()
        results: Dict[int, ExecutionResult] = {}

        # One thread per snapshot at most; submission is throttled below.
        pool = ThreadPoolExecutor(max_workers=len(snapshots),
                                  thread_name_prefix="snapcleaner-delete")
        try:
            while queue or in_flight:
                while queue and len(in_flight) < self.max_workers:
                    index = queue.popleft()
                    submitted_at[index] = time.monotonic()
                    future = pool.submit(self._attempt, snapshots[index], index, abandoned)
                    in_flight[future] = index

                done, _ = wait(set(in_flight), timeout=self.poll_interval,
                               return_when=FIRST_COMPLETED)
                for future in done:
                    index = in_flight.pop(future)
                    results[index] = future.result()

                now = time.monotonic()
                for future, index in list(in_flight.items()):
                    if now - submitted_at[index] > self.timeout:
                        del in_flight[future]
                        abandoned.add(index)
                        snapshot = snapshots[index]
                        self.notifier.failure(
                            f"Deletion of snapshot '{snapshot.name}' of VM "
                            f"'{snapshot.vm_name}' exceeded {self.timeout:g}s"
                        )
                        results[index] = ExecutionResult.failed(snapshot, TIMEOUT_REASON)
        finally:
            # Abandoned (timed out) calls keep running in their threads.
            pool.shutdown(wait=False, cancel_futures=True)

        return [results[index] for index in range(len(snapshots))]
