"""Utility functions and notification system for SnapCleaner."""

import sys
import shutil
import logging
from datetime import timedelta
from pathlib import Path
from typing import Union


class NotificationManager:
    """Simple notification manager for console and file logging."""

    def __init__(self, config):
        """Initialize notification manager.

        Args:
            config: Configuration object
        """
        self.config = config
        self.logger = self._setup_logger()
        self.use_unicode = self._check_unicode_support()

    def _check_unicode_support(self) -> bool:
        """Check if the terminal supports Unicode characters."""
        try:
            "✅".encode(sys.stdout.encoding or 'utf-8')
            return True
        except (UnicodeEncodeError, LookupError):
            return False

    def _setup_logger(self) -> logging.Logger:
        """Setup logging configuration."""
        logger = logging.getLogger('snapcleaner')
        logger.handlers.clear()

        level_name = str(self.config.get('notifications.level', 'INFO')).upper()
        logger.setLevel(getattr(logging, level_name, logging.INFO))

        if self.config.get('notifications.console', True):
            console_handler = logging.StreamHandler(sys.stderr)
            console_formatter = logging.Formatter(
                '%(asctime)s - %(levelname)s - %(message)s'
            )
            console_handler.setFormatter(console_formatter)
            logger.addHandler(console_handler)

        log_file = self.config.get('notifications.file')
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

        return logger

    def _format_message(self, message: str, prefix: str) -> str:
        """Format message with appropriate prefix based on Unicode support."""
        if self.use_unicode:
            return f"{prefix} {message}"
        ascii_prefixes = {
            "✅": "[SUCCESS]",
            "❌": "[FAILED]",
        }
        return f"{ascii_prefixes.get(prefix, prefix)} {message}"

    def debug(self, message: str) -> None:
        """Log debug message."""
        self.logger.debug(message)

    def info(self, message: str) -> None:
        """Log info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log error message."""
        self.logger.error(message)

    def success(self, message: str) -> None:
        """Log success message."""
        self.logger.info(self._format_message(message, "✅"))

    def failure(self, message: str) -> None:
        """Log failure message."""
        self.logger.error(self._format_message(message, "❌"))


def format_size_mb(size_mb: float) -> str:
    """Format a size given in megabytes in human readable format.

    Args:
        size_mb: Size in MB

    Returns:
        Formatted size string
    """
    size = float(size_mb)
    for unit in ['MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"


def format_age(age: timedelta) -> str:
    """Format a snapshot age as days and hours."""
    if age.total_seconds() < 0:
        return "0d"
    hours = age.seconds // 3600
    if hours:
        return f"{age.days}d{hours}h"
    return f"{age.days}d"


def ensure_directory(path: Union[str, Path]) -> Path:
    """Ensure directory exists, create if it doesn't."""
    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def is_command_available(command: str) -> bool:
    """Check if a command is available in the system PATH."""
    return shutil.which(command) is not None
