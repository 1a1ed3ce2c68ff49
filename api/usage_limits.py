from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

from programs.form_agent.lm import env_int


class UsageLimiter:
    """
    Sliding-window counter per user.

    `check_limit()` counts the call when it is allowed, so it doubles as the usage record.
    Configured by `FORMCRAFT_GUEST_LIMIT` (default 5) and `FORMCRAFT_GUEST_WINDOW_SEC`
    (default one day).
    """

    def __init__(
        self,
        *,
        limit: Optional[int] = None,
        window_sec: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = max(0, int(limit if limit is not None else env_int("FORMCRAFT_GUEST_LIMIT", 5)))
        self.window_sec = max(1, int(window_sec if window_sec is not None else env_int("FORMCRAFT_GUEST_WINDOW_SEC", 86400)))
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def check_limit(self, user_id: str) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(user_id, deque())
            while hits and now - hits[0] >= self.window_sec:
                hits.popleft()
            current = len(hits)
            if current >= self.limit:
                return {
                    "allowed": False,
                    "current": current,
                    "limit": self.limit,
                    "reason": "Guest user limits exceeded",
                }
            hits.append(now)
            return {"allowed": True, "current": current + 1, "limit": self.limit}

    def reset(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._hits.clear()
            else:
                self._hits.pop(user_id, None)
