import logging

from casebot.core import prompts

logger = logging.getLogger(__name__)


class Dispatcher:
    """Routes inbound chat events to the case state machine.

    Each event is contained: a failure is logged and never reaches the
    transport's polling loop or other chats.
    """

    def __init__(self, registry, machine, transport):
        self.registry = registry
        self.machine = machine
        self.transport = transport

    async def handle_message(self, message):
        try:
            await self._route_message(message)
        except Exception:
            logger.exception("[dispatch] chat %s: failed to handle message %s", message.chat_id, message.message_id)

    async def handle_confirmation(self, chat_id, callback_id, data, prompt_message_id=None):
        try:
            await self._route_confirmation(chat_id, callback_id, data, prompt_message_id)
        except Exception:
            logger.exception("[dispatch] chat %s: failed to handle confirmation %s", chat_id, data)

    async def _route_message(self, message):
        key = message.chat_id
        case = self.registry.get(key)

        if case is not None and case.awaiting_name:
            await self.machine.on_name_received(key, case, message.text)
            return

        if not message.is_forwarded and case is None:
            if not self.registry.try_admit(key):
                await self._reject_overloaded(key)
                return
            case, created = self.registry.get_or_create(key, is_manual=True, first_message=message)
            if created:
                await self.transport.send(key, prompts.MANUAL_CASE_QUESTION, buttons=prompts.MANUAL_CASE_BUTTONS)
                return
            # another handler created the case first; collect into it
            self.machine.on_message(key, case, message)
            return

        if not self.registry.try_admit(key):
            await self._reject_overloaded(key)
            return
        case, _ = self.registry.get_or_create(key)
        self.machine.on_message(key, case, message)

    async def _route_confirmation(self, chat_id, callback_id, data, prompt_message_id):
        if prompt_message_id is not None:
            await self.transport.clear_buttons(chat_id, prompt_message_id)

        if data not in (prompts.MANUAL_CASE_YES, prompts.MANUAL_CASE_NO):
            logger.debug("[dispatch] chat %s: unknown callback data %r", chat_id, data)
            await self.transport.answer(callback_id, prompts.STALE_ACTION)
            return

        handled = await self.machine.on_manual_confirmation(chat_id, data == prompts.MANUAL_CASE_YES)
        if handled:
            await self.transport.answer(callback_id)
        else:
            await self.transport.answer(callback_id, prompts.STALE_ACTION)

    async def _reject_overloaded(self, key):
        logger.warning("[dispatch] chat %s: registry full (%d cases), message dropped", key, len(self.registry))
        await self.transport.send(key, prompts.OVERLOADED)
