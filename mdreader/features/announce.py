"""
Accessibility announcements.

The session reports user-meaningful transitions (document opened, TOC
toggled) as short text messages. The host delivers them to assistive
technology, e.g. by writing them into an aria-live region.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional

logger = logging.getLogger(__name__)


class Announcer:
    """Queues announcements until the host drains them."""

    def __init__(self, sink: Optional[Callable[[str], None]] = None, maxlen: int = 50):
        self._sink = sink
        self._pending: Deque[str] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def announce(self, message: str) -> None:
        if not message:
            return
        logger.debug(f"Announce: {message}")
        with self._lock:
            self._pending.append(message)
        if self._sink is not None:
            self._sink(message)

    def drain(self) -> List[str]:
        with self._lock:
            messages = list(self._pending)
            self._pending.clear()
        return messages
