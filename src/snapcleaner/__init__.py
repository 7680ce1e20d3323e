"""
SnapCleaner - retention-driven VM snapshot cleanup

Deletes virtual machine snapshots past a retention window, verifies that
the deletions took effect and reports what was deleted, kept and failed.
"""

__version__ = "0.1.0"

from .classifier import classify, classify_all
from .config import Config
from .engine import CleanupEngine
from .models import (
    Classification,
    ExecutionResult,
    ExecutionStatus,
    Report,
    RetentionPolicy,
    Scope,
    Snapshot,
)

__all__ = [
    "CleanupEngine",
    "Classification",
    "Config",
    "ExecutionResult",
    "ExecutionStatus",
    "Report",
    "RetentionPolicy",
    "Scope",
    "Snapshot",
    "classify",
    "classify_all",
]
