"""
Memory watchdog for the analysis pipeline.
"""

import logging
from typing import Callable, Optional

import psutil

logger = logging.getLogger(__name__)


def current_rss_bytes() -> int:
    """Resident set size of this process."""
    return psutil.Process().memory_info().rss


class MemoryGuard:
    """
    Report when process memory crosses ``limit * fraction``.

    A guard without a limit never trips.
    """

    def __init__(
        self,
        limit_bytes: Optional[int],
        fraction: float = 0.70,
        usage_probe: Callable[[], int] = current_rss_bytes,
    ):
        self.limit_bytes = limit_bytes
        self.fraction = fraction
        self.usage_probe = usage_probe
        self.threshold_bytes = int(limit_bytes * fraction) if limit_bytes else None

    def is_exceeded(self) -> bool:
        if self.threshold_bytes is None:
            return False

        try:
            usage = self.usage_probe()
        except psutil.Error as e:
            logger.warning(f"Could not read process memory, guard disabled for this check: {e}")
            return False

        if usage >= self.threshold_bytes:
            logger.debug(
                f"Memory usage {usage / 1048576:.1f}MB reached threshold "
                f"{self.threshold_bytes / 1048576:.1f}MB"
            )
            return True
        return False
