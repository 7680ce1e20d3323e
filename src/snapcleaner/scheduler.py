"""Interval scheduler for recurring snapshot cleanup runs."""

import re
import time
import signal
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Any, Optional

from .models import Report
from .utils import NotificationManager


class CleanupScheduler:
    """Runs the snapshot cleanup on a fixed interval."""

    def __init__(self, config, runner: Callable[[], Report],
                 notification_manager: Optional[NotificationManager] = None,
                 state_file: Optional[str] = None):
        """Initialize scheduler.

        Args:
            config: Configuration object
            runner: Callable performing one cleanup run
            notification_manager: Notification manager instance (optional)
            state_file: Override for the scheduler state file path
        """
        self.config = config
        self.runner = runner
        self.notifier = notification_manager or NotificationManager(config)
        self.state_file = Path(state_file or config.get('scheduler.state_file',
                                                        'snapcleaner_scheduler.json'))
        self.state = self._load_state()
        self.running = False

    def _load_state(self) -> Dict[str, Any]:
        """Load scheduler state from file."""
        default_state = {
            "enabled": False,
            "interval_minutes": 1440,
            "last_run": None,
            "next_run": None,
            "last_summary": None
        }

        if self.state_file.exists():
            try:
                with open(self.state_file, 'r') as f:
                    default_state.update(json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                self.notifier.warning(f"Failed to load scheduler state: {e}")

        return default_state

    def _save_state(self):
        """Save scheduler state to file."""
        try:
            with open(self.state_file, 'w') as f:
                json.dump(self.state, f, indent=2)
        except OSError as e:
            self.notifier.error(f"Failed to save scheduler state: {e}")

    @staticmethod
    def parse_interval(interval_str: str) -> int:
        """Parse interval string ('10m', '2h', '1d') to minutes."""
        interval_str = interval_str.lower().strip()

        match = re.match(r'^(\d+)([mhd]?)$', interval_str)
        if not match or int(match.group(1)) == 0:
            raise ValueError(f"Invalid interval format: {interval_str}. Use format like '10m', '2h', '1d'")

        multipliers = {'m': 1, 'h': 60, 'd': 1440}
        return int(match.group(1)) * multipliers[match.group(2) or 'm']

    @staticmethod
    def format_interval(minutes: int) -> str:
        """Format minutes to human readable string."""
        if minutes < 60:
            return f"{minutes}m"
        if minutes < 1440:
            hours, remaining_minutes = divmod(minutes, 60)
            return f"{hours}h" if remaining_minutes == 0 else f"{hours}h{remaining_minutes}m"
        days = minutes // 1440
        remaining_hours = (minutes % 1440) // 60
        return f"{days}d" if remaining_hours == 0 else f"{days}d{remaining_hours}h"

    def enable(self, interval: str):
        """Enable scheduled cleanup with specified interval."""
        interval_minutes = self.parse_interval(interval)

        self.state["enabled"] = True
        self.state["interval_minutes"] = interval_minutes
        self.state["next_run"] = (datetime.now() + timedelta(minutes=interval_minutes)).isoformat()
        self._save_state()

        self.notifier.success(
            f"Scheduled cleanup enabled with interval: {self.format_interval(interval_minutes)}"
        )
        self.notifier.info(f"Next cleanup scheduled for: {self.state['next_run'][:19].replace('T', ' ')}")

    def disable(self):
        """Disable scheduled cleanup."""
        self.state["enabled"] = False
        self.state["next_run"] = None
        self._save_state()
        self.notifier.success("Scheduled cleanup disabled")

    def is_enabled(self) -> bool:
        return self.state.get("enabled", False)

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status information."""
        interval_minutes = self.state.get("interval_minutes", 1440)
        return {
            "enabled": self.is_enabled(),
            "running": self.running,
            "interval": self.format_interval(interval_minutes),
            "interval_minutes": interval_minutes,
            "last_run": self.state.get("last_run"),
            "next_run": self.state.get("next_run"),
            "last_summary": self.state.get("last_summary"),
        }

    def _should_run(self) -> bool:
        """Check if it's time to run the cleanup."""
        if not self.is_enabled():
            return False

        next_run_str = self.state.get("next_run")
        if not next_run_str:
            return True

        try:
            return datetime.now() >= datetime.fromisoformat(next_run_str)
        except ValueError:
            return True

    def _run_cleanup(self) -> Optional[Report]:
        """Run one cleanup and record the outcome in the state file."""
        report = None
        self.notifier.info("Starting scheduled snapshot cleanup...")
        try:
            report = self.runner()
            self.state["last_summary"] = {
                "headline": report.headline,
                "dry_run": report.dry_run,
                "deleted": report.deleted_count,
                "failed": report.failed_count,
                "remaining_total": report.remaining_total,
                "scope_errors": len(report.scope_errors),
            }
        except Exception as e:
            self.notifier.failure(f"Scheduled cleanup failed: {str(e)}")
            self.state["last_summary"] = {"error": str(e)}

        self.state["last_run"] = datetime.now().isoformat()
        self.state["next_run"] = (
            datetime.now() + timedelta(minutes=self.state["interval_minutes"])
        ).isoformat()
        self._save_state()
        return report

    def start_daemon(self):
        """Start the scheduler daemon (foreground)."""
        if not self.is_enabled():
            self.notifier.error("Scheduled cleanup is not enabled.")
            return

        self.running = True

        def signal_handler(signum, frame):
            self.notifier.info("Received shutdown signal...")
            self.running = False

        signal.signal(signal.SIGINT, signal_handler)
        if hasattr(signal, 'SIGTERM'):
            signal.signal(signal.SIGTERM, signal_handler)

        self.notifier.success(
            f"Scheduler daemon started (interval: {self.format_interval(self.state['interval_minutes'])})"
        )

        while self.running:
            if self._should_run():
                self._run_cleanup()

            for _ in range(30):
                if not self.running:
                    break
                time.sleep(1)

        self.notifier.info("Cleanup scheduler daemon stopped")

    def run_now(self) -> Optional[Report]:
        """Run the cleanup immediately (one-time)."""
        if not self.is_enabled():
            self.notifier.error("Scheduled cleanup is not enabled.")
            return None
        return self._run_cleanup()
