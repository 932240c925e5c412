import pytest

from casebot.core.case import CaseMessage, ForwardOrigin
from casebot.core.dispatcher import Dispatcher
from casebot.core.registry import CaseRegistry
from casebot.core.state_machine import CaseStateMachine


class FakeTransport:
    def __init__(self):
        self.sent = []
        self.answers = []
        self.cleared = []

    async def send(self, chat_id, text, buttons=None, markdown=False):
        self.sent.append((chat_id, text, buttons, markdown))

    async def answer(self, callback_id, text=None):
        self.answers.append((callback_id, text))

    async def clear_buttons(self, chat_id, message_id):
        self.cleared.append((chat_id, message_id))

    def texts(self, chat_id=None):
        return [text for cid, text, _, _ in self.sent if chat_id is None or cid == chat_id]


class FakeSink:
    def __init__(self, fail_with=None):
        self.rows = []
        self.fail_with = fail_with

    async def append(self, timestamp, operator_name, customer_info, problem_text, status):
        self.rows.append({
            "timestamp": timestamp,
            "operator_name": operator_name,
            "customer_info": customer_info,
            "problem_text": problem_text,
            "status": status,
        })
        if self.fail_with is not None:
            raise self.fail_with
        return f"0131T1423-{len(self.rows):02d}"


def forwarded(chat_id, text, message_id=1, caption=None):
    return CaseMessage(
        chat_id=chat_id,
        message_id=message_id,
        text=text,
        caption=caption,
        forward_origin=ForwardOrigin("Anna", "Petrova", "anna_p"),
    )


def plain(chat_id, text, message_id=1):
    return CaseMessage(chat_id=chat_id, message_id=message_id, text=text)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def registry():
    return CaseRegistry(max_pending=1000)


@pytest.fixture
def machine(registry, sink, transport):
    return CaseStateMachine(registry, sink, transport, grouping_delay=0.05)


@pytest.fixture
def dispatcher(registry, machine, transport):
    return Dispatcher(registry, machine, transport)
