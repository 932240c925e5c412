import asyncio
import logging

from casebot.core import prompts
from casebot.core.case import build_case_record

logger = logging.getLogger(__name__)

DEFAULT_GROUPING_DELAY = 5.0


class CaseStateMachine:
    """Per-chat case lifecycle: collecting -> awaiting name -> written to the sink.

    `transport` needs async `send(chat_id, text, buttons=None, markdown=False)`;
    `sink` needs async `append(timestamp, operator_name, customer_info,
    problem_text, status)` returning the case id.
    """

    def __init__(self, registry, sink, transport, grouping_delay=DEFAULT_GROUPING_DELAY):
        self.registry = registry
        self.sink = sink
        self.transport = transport
        self.grouping_delay = grouping_delay

    def on_message(self, key, case, message):
        """Queue a content message and restart the grouping window."""
        epoch = case.append(message)
        timer = asyncio.create_task(self._grouping_timer(key, case, epoch))
        case.arm_timer(epoch, timer)
        logger.debug("[grouping] chat %s: message queued, epoch %d", key, epoch)

    async def _grouping_timer(self, key, case, epoch):
        await asyncio.sleep(self.grouping_delay)
        await self.on_debounce_fire(key, case, epoch)

    async def on_debounce_fire(self, key, case, epoch):
        if self.registry.get(key) is not case or not case.mark_awaiting_name(epoch):
            logger.debug("[grouping] chat %s: stale timer for epoch %d ignored", key, epoch)
            return False
        try:
            await self.transport.send(key, prompts.grouped_prompt(case.message_count))
        except Exception:
            logger.exception("[grouping] chat %s: failed to send the name prompt", key)
        return True

    async def on_manual_confirmation(self, key, accepted):
        """Handle the yes/no answer to the manual-creation question.

        Returns False when there is no manual case to act on.
        """
        case = self.registry.get(key)
        if case is None or not case.is_manual:
            logger.debug("[manual] chat %s: confirmation for a missing case", key)
            return False

        if not accepted:
            self.registry.remove(key, expected=case)
            await self.transport.send(key, prompts.MANUAL_CASE_CANCELLED)
            return True

        if not case.mark_awaiting_name():
            logger.debug("[manual] chat %s: case already awaits a name", key)
            return False
        await self.transport.send(key, prompts.MANUAL_CASE_ACCEPTED)
        return True

    async def on_name_received(self, key, case, text):
        """Finish the case with the operator name, or re-prompt for an empty one."""
        operator_name = (text or "").strip()
        if not operator_name:
            await self.transport.send(key, prompts.NAME_REQUIRED)
            return None

        # whoever removes the case owns the write
        if self.registry.remove(key, expected=case) is None:
            logger.debug("[case] chat %s: case already completed or expired", key)
            return None

        record = build_case_record(case, operator_name)
        logger.info(
            "[case] chat %s: operator %s registers a case of %d message(s)",
            key, operator_name, record.message_count,
        )
        try:
            case_id = await self.sink.append(
                record.timestamp,
                record.operator_name,
                record.customer_info,
                record.problem_text,
                record.status,
            )
        except Exception:
            logger.exception("[case] chat %s: failed to write the case for %s", key, operator_name)
            await self.transport.send(key, prompts.SINK_FAILED)
            return None

        await self.transport.send(
            key,
            prompts.case_registered(case_id, operator_name, record.message_count),
            markdown=True,
        )
        return case_id
