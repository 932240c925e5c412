import logging
import threading
import time

from casebot.core.case import PendingCase

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING_CASES = 1000


class CaseRegistry:
    """Map of chat id -> PendingCase, guarded by a single lock.

    Removal and disposal happen in the same critical section, so a case that
    is no longer registered never holds a live timer.
    """

    def __init__(self, max_pending=DEFAULT_MAX_PENDING_CASES, clock=time.monotonic):
        self.max_pending = max_pending
        self._clock = clock
        self._cases = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._cases)

    def __contains__(self, key):
        with self._lock:
            return key in self._cases

    def get(self, key):
        with self._lock:
            return self._cases.get(key)

    def try_admit(self, key):
        """False when the registry is full and `key` has no case yet."""
        with self._lock:
            return key in self._cases or len(self._cases) < self.max_pending

    def get_or_create(self, key, is_manual=False, first_message=None):
        """Return (case, created). Only one caller ever creates the case for a key."""
        with self._lock:
            case = self._cases.get(key)
            if case is not None:
                return case, False
            case = PendingCase(is_manual=is_manual, created_at=self._clock())
            if first_message is not None:
                case.append(first_message)
            self._cases[key] = case
        logger.info("[registry] chat %s: %s case created", key, "manual" if is_manual else "forwarded")
        return case, True

    def remove(self, key, expected=None):
        """Remove and dispose the case for `key`.

        With `expected`, only that exact case is removed. Returns the removed
        case, or None if there was nothing (matching) to remove.
        """
        with self._lock:
            case = self._cases.get(key)
            if case is None or (expected is not None and case is not expected):
                return None
            del self._cases[key]
            case.dispose()
        return case

    def sweep_expired(self, ttl):
        """Drop every case older than `ttl` seconds. Returns the removed keys."""
        with self._lock:
            now = self._clock()
            expired = [key for key, case in self._cases.items() if now - case.created_at > ttl]
            for key in expired:
                self._cases.pop(key).dispose()
        if expired:
            logger.info("[registry] sweep removed %d expired case(s)", len(expired))
        return expired
