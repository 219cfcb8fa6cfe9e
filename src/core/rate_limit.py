"""
Per-user cooldown for query commands.

Keeps the last successful completion timestamp per user in process memory.
Checking never mutates; only `arm` records a completion.
"""

import logging
import math
import time
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class CooldownTracker:
    def __init__(self, name: str, cooldown_seconds: int, clock: Callable[[], float] = time.time):
        self.name = name
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self._last_completed: Dict[str, float] = {}

    def remaining_seconds(self, user_id: str) -> int:
        """Whole seconds left in the window, 0 when the user may proceed."""
        if self.cooldown_seconds <= 0:
            return 0
        last = self._last_completed.get(user_id)
        if last is None:
            return 0
        remaining = self.cooldown_seconds - (self.clock() - last)
        if remaining <= 0:
            return 0
        return math.ceil(remaining)

    def arm(self, user_id: str) -> None:
        self._last_completed[user_id] = self.clock()
        logger.info(f"Cooldown '{self.name}' armed for user {user_id} ({self.cooldown_seconds}s)")


def wait_message(seconds: int, what: str) -> str:
    return f"Please wait {seconds}s before requesting another {what}."
