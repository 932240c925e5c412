"""Pending case state and the record assembled from it.

A PendingCase is owned by the CaseRegistry. Handlers for one chat mutate it
through the small locked methods below; nothing else touches its fields.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from datetime import datetime

from casebot.core import prompts

PROBLEM_SEPARATOR = "\n---\n"
TIMESTAMP_FORMAT = "%d.%m.%Y %H:%M:%S"


@dataclass(frozen=True)
class ForwardOrigin:
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None


@dataclass(frozen=True)
class CaseMessage:
    """Transport-neutral copy of one inbound chat message."""

    chat_id: int
    message_id: int
    text: str | None = None
    caption: str | None = None
    forward_origin: ForwardOrigin | None = None

    @property
    def is_forwarded(self):
        return self.forward_origin is not None


@dataclass(frozen=True)
class CaseRecord:
    timestamp: str
    operator_name: str
    customer_info: str
    problem_text: str
    status: str
    message_count: int


class PendingCase:
    """Messages collected for one chat plus the grouping timer state.

    `epoch` is bumped on every append and on every transition to
    awaiting-name; a grouping timer only commits if it still holds the epoch
    it was scheduled with.
    """

    def __init__(self, is_manual=False, created_at=None):
        self.is_manual = is_manual
        self.created_at = time.monotonic() if created_at is None else created_at
        self.awaiting_name = False
        self.epoch = 0
        self.disposed = False
        self._messages = []
        self._timer = None
        self._lock = threading.Lock()

    @property
    def messages(self):
        with self._lock:
            return list(self._messages)

    @property
    def message_count(self):
        with self._lock:
            return len(self._messages)

    def append(self, message):
        """Queue a message and invalidate any pending timer. Returns the new epoch."""
        with self._lock:
            self._messages.append(message)
            self.epoch += 1
            self._drop_timer()
            return self.epoch

    def arm_timer(self, epoch, timer):
        """Attach the timer scheduled for `epoch`; a superseded timer is cancelled."""
        with self._lock:
            if self.disposed or epoch != self.epoch:
                timer.cancel()
                return False
            self._timer = timer
            return True

    def mark_awaiting_name(self, epoch=None):
        """Switch to awaiting-name.

        With `epoch` given (grouping timer path) the switch only happens if
        that epoch is still current. Returns False when nothing changed.
        """
        with self._lock:
            if self.disposed or self.awaiting_name:
                return False
            if epoch is not None and epoch != self.epoch:
                return False
            self.awaiting_name = True
            self.epoch += 1
            self._drop_timer()
            return True

    def dispose(self):
        with self._lock:
            if self.disposed:
                return
            self.disposed = True
            self._drop_timer()

    def _drop_timer(self):
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return
        # the timer itself calls into here when it fires
        try:
            if timer is asyncio.current_task():
                return
        except RuntimeError:
            pass
        timer.cancel()


def sanitize_cell(value):
    """Prefix values a spreadsheet would read as a formula with an apostrophe."""
    if not value:
        return ""
    if value[0] in "=+-@":
        return "'" + value
    return value


def describe_customer(case, messages):
    first = messages[0]
    if case.is_manual or first.forward_origin is None:
        return prompts.MANUAL_CUSTOMER_INFO
    origin = first.forward_origin
    return f"{origin.first_name or ''} {origin.last_name or ''} (@{origin.username or ''})"


def join_problem_text(messages):
    parts = []
    for message in messages:
        if message.text is not None:
            parts.append(message.text)
        elif message.caption is not None:
            parts.append(message.caption)
        else:
            parts.append(prompts.NO_TEXT_PLACEHOLDER)
    problem_text = PROBLEM_SEPARATOR.join(part for part in parts if part)
    if not problem_text.strip():
        return prompts.NO_TEXT_AT_ALL
    return problem_text


def build_case_record(case, operator_name, now=None):
    """Assemble the row written to the sheet from a case and the operator name."""
    messages = case.messages
    if not messages:
        raise ValueError("cannot build a record from an empty case")
    now = now or datetime.now()
    return CaseRecord(
        timestamp=now.strftime(TIMESTAMP_FORMAT),
        operator_name=operator_name,
        customer_info=describe_customer(case, messages),
        problem_text=join_problem_text(messages),
        status=prompts.STATUS_NEW,
        message_count=len(messages),
    )
