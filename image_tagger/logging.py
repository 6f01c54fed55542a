"""
Logging configuration for the Image Tagger service.
"""

import logging
import threading
from typing import Any, Dict
from rich.logging import RichHandler


def setup_logging(log_level: str = "INFO") -> None:
    """Configure clean, simple logging output."""

    # Configure standard library logging with Rich handler
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[RichHandler(
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
            show_level=False,
            markup=False
        )],
        force=True  # Override any existing configuration
    )

    # One line per request is too chatty for an interactive tool
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a standard logger instance."""
    return logging.getLogger(name)


class MetricsLogger:
    """Logger for tracking request metrics."""

    def __init__(self):
        self.logger = get_logger("metrics")
        self._lock = threading.Lock()
        self.metrics: Dict[str, Any] = {
            "updates": 0,
            "update_failures": 0,
            "ignored_updates": 0,
            "queries": 0,
            "stats_requests": 0,
        }

    def _bump(self, key: str) -> None:
        with self._lock:
            self.metrics[key] += 1

    def log_update(self, name: str, tags_count: int) -> None:
        """Log a successful tag update."""
        self._bump("updates")
        self.logger.debug(f"Tags updated: {name} | Tags: {tags_count} | Total updates: {self.metrics['updates']}")

    def log_update_failure(self, name: str, error: str) -> None:
        """Log a failed tag update."""
        self._bump("update_failures")
        self.logger.warning(f"Tag update failed: {name} | Error: {error}")

    def log_ignored_update(self, name: str) -> None:
        """Log an update for an image that is not in the index."""
        self._bump("ignored_updates")
        self.logger.debug(f"Ignoring update for unknown image: {name}")

    def log_query(self, selection_size: int, matches: int) -> None:
        self._bump("queries")
        self.logger.debug(f"Query over {selection_size} tags matched {matches} images")

    def log_stats(self, groups: int) -> None:
        self._bump("stats_requests")
        self.logger.debug(f"Stats computed: {groups} groups")

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics."""
        with self._lock:
            return self.metrics.copy()
