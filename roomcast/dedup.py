"""Short-lived window suppressing repeated client message tokens."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from roomcast.settings import settings

logger = logging.getLogger(__name__)


class DedupWindow:
    """Check-and-set cache of idempotency tokens.

    A token seen less than ``reject_after`` seconds ago is rejected. Every
    accepted token is evicted ``retention`` seconds after insertion by a loop
    timer, whether or not it is looked up again.
    """

    def __init__(
        self,
        reject_after: float = settings.DEDUP_REJECT_SECONDS,
        retention: float = settings.DEDUP_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reject_after = reject_after
        self.retention = retention
        self.clock = clock
        self._seen: Dict[str, float] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def should_accept(self, token: Optional[str]) -> bool:
        if not token:
            return True
        now = self.clock()
        seen_at = self._seen.get(token)
        if seen_at is not None and now - seen_at < self.reject_after:
            logger.info("Duplicate message detected (token=%s), skipping", token)
            return False
        self._seen[token] = now
        self._schedule_eviction(token)
        return True

    def forget(self, token: Optional[str]) -> None:
        """Drop a token early so the same message can be retried."""
        if not token:
            return
        self._seen.pop(token, None)
        timer = self._timers.pop(token, None)
        if timer is not None:
            timer.cancel()

    def _schedule_eviction(self, token: str) -> None:
        old = self._timers.pop(token, None)
        if old is not None:
            old.cancel()
        loop = asyncio.get_running_loop()
        self._timers[token] = loop.call_later(self.retention, self._evict, token)

    def _evict(self, token: str) -> None:
        self._seen.pop(token, None)
        self._timers.pop(token, None)

    def __contains__(self, token: object) -> bool:
        return token in self._seen

    def __len__(self) -> int:
        return len(self._seen)
