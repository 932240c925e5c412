import asyncio

from casebot.core import prompts
from casebot.core.dispatcher import Dispatcher
from casebot.core.registry import CaseRegistry
from casebot.core.state_machine import CaseStateMachine
from conftest import forwarded, plain

DELAY = 0.05


async def test_forwarded_flow_end_to_end(dispatcher, registry, sink, transport):
    for idx, text in enumerate(("A", "B", "C"), start=1):
        await dispatcher.handle_message(forwarded(42, text, idx))
    await asyncio.sleep(DELAY * 4)
    assert transport.texts(42) == [prompts.grouped_prompt(3)]

    await dispatcher.handle_message(plain(42, "Ivan", 4))

    assert sink.rows[0]["problem_text"] == "A\n---\nB\n---\nC"
    assert sink.rows[0]["operator_name"] == "Ivan"
    assert sink.rows[0]["customer_info"] == "Anna Petrova (@anna_p)"
    assert 42 not in registry


async def test_unforwarded_message_asks_for_manual_creation(dispatcher, registry, transport):
    await dispatcher.handle_message(plain(7, "printer is broken"))

    case = registry.get(7)
    assert case.is_manual
    assert [m.text for m in case.messages] == ["printer is broken"]
    chat_id, text, buttons, _ = transport.sent[0]
    assert text == prompts.MANUAL_CASE_QUESTION
    assert buttons == prompts.MANUAL_CASE_BUTTONS


async def test_manual_case_yes_then_name(dispatcher, registry, sink, transport):
    await dispatcher.handle_message(plain(7, "printer is broken"))
    await dispatcher.handle_confirmation(7, "cb1", prompts.MANUAL_CASE_YES, prompt_message_id=10)

    assert transport.cleared == [(7, 10)]
    assert transport.answers == [("cb1", None)]
    assert registry.get(7).awaiting_name

    await dispatcher.handle_message(plain(7, "Olga", 2))
    assert sink.rows[0]["customer_info"] == prompts.MANUAL_CUSTOMER_INFO
    assert sink.rows[0]["problem_text"] == "printer is broken"
    assert 7 not in registry


async def test_manual_case_no_cancels(dispatcher, registry, transport):
    await dispatcher.handle_message(plain(7, "hello"))
    await dispatcher.handle_confirmation(7, "cb1", prompts.MANUAL_CASE_NO)
    assert 7 not in registry
    assert transport.texts(7)[-1] == prompts.MANUAL_CASE_CANCELLED


async def test_stale_confirmation_is_answered_as_stale(dispatcher, registry, transport):
    await dispatcher.handle_confirmation(8, "cb1", prompts.MANUAL_CASE_YES)
    await dispatcher.handle_message(forwarded(9, "x"))
    await dispatcher.handle_confirmation(9, "cb2", prompts.MANUAL_CASE_NO)

    assert transport.answers == [("cb1", prompts.STALE_ACTION), ("cb2", prompts.STALE_ACTION)]
    assert 9 in registry


async def test_follow_up_messages_join_existing_case(dispatcher, registry, transport):
    await dispatcher.handle_message(plain(7, "first"))
    await dispatcher.handle_message(plain(7, "second", 2))
    await asyncio.sleep(DELAY * 4)

    case = registry.get(7)
    assert [m.text for m in case.messages] == ["first", "second"]
    assert case.awaiting_name
    assert transport.texts(7)[-1] == prompts.grouped_prompt(2)


async def test_overload_rejects_new_conversation(sink, transport):
    registry = CaseRegistry(max_pending=3)
    machine = CaseStateMachine(registry, sink, transport, grouping_delay=DELAY)
    dispatcher = Dispatcher(registry, machine, transport)
    for chat_id in (1, 2, 3):
        registry.get_or_create(chat_id)

    await dispatcher.handle_message(forwarded(99, "help"))
    await dispatcher.handle_message(plain(100, "help"))

    assert 99 not in registry
    assert 100 not in registry
    assert len(registry) == 3
    assert transport.texts(99) == [prompts.OVERLOADED]
    assert transport.texts(100) == [prompts.OVERLOADED]


async def test_existing_case_is_admitted_at_capacity(sink, transport):
    registry = CaseRegistry(max_pending=1)
    machine = CaseStateMachine(registry, sink, transport, grouping_delay=DELAY)
    dispatcher = Dispatcher(registry, machine, transport)

    await dispatcher.handle_message(forwarded(1, "a"))
    await dispatcher.handle_message(forwarded(1, "b", 2))

    assert registry.get(1).message_count == 2
    assert prompts.OVERLOADED not in transport.texts(1)


async def test_fault_in_one_event_is_contained(registry, transport):
    class BrokenMachine:
        def on_message(self, key, case, message):
            raise RuntimeError("boom")

    dispatcher = Dispatcher(registry, BrokenMachine(), transport)
    await dispatcher.handle_message(forwarded(1, "a"))
    await dispatcher.handle_message(forwarded(2, "b"))

    assert 1 in registry
    assert 2 in registry


async def test_slow_sink_write_does_not_hold_other_chats(registry, transport):
    release = asyncio.Event()

    class StalledSink:
        async def append(self, *args):
            await release.wait()
            return "0131T1423-01"

    machine = CaseStateMachine(registry, StalledSink(), transport, grouping_delay=DELAY)
    dispatcher = Dispatcher(registry, machine, transport)
    await dispatcher.handle_message(forwarded(1, "a"))
    await asyncio.sleep(DELAY * 4)

    writing = asyncio.create_task(dispatcher.handle_message(plain(1, "Ivan", 2)))
    await dispatcher.handle_message(forwarded(2, "b"))
    await asyncio.sleep(DELAY * 4)

    assert transport.texts(2) == [prompts.grouped_prompt(1)]
    assert not writing.done()

    release.set()
    await writing
    assert 1 not in registry
