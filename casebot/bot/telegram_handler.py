import logging

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    MessageOriginChannel,
    MessageOriginChat,
    MessageOriginHiddenUser,
    MessageOriginUser,
    Update,
)
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from casebot.config import ALLOWED_USERS
from casebot.core.case import CaseMessage, ForwardOrigin

logger = logging.getLogger(__name__)


class TelegramTransport:
    """Outbound side of the bot: messages, button prompts and callback answers."""

    def __init__(self, bot):
        self.bot = bot

    async def send(self, chat_id, text, buttons=None, markdown=False):
        reply_markup = None
        if buttons:
            reply_markup = InlineKeyboardMarkup([
                [InlineKeyboardButton(label, callback_data=data) for label, data in row]
                for row in buttons
            ])
        await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            reply_markup=reply_markup,
            parse_mode=ParseMode.MARKDOWN_V2 if markdown else None,
        )

    async def answer(self, callback_id, text=None):
        await self.bot.answer_callback_query(callback_id, text=text)

    async def clear_buttons(self, chat_id, message_id):
        try:
            await self.bot.edit_message_reply_markup(chat_id=chat_id, message_id=message_id, reply_markup=None)
        except TelegramError as e:
            # already edited or too old to edit
            logger.debug("[telegram] chat %s: could not clear buttons: %s", chat_id, e)


def to_forward_origin(origin):
    if origin is None:
        return None
    if isinstance(origin, MessageOriginUser):
        user = origin.sender_user
        return ForwardOrigin(user.first_name, user.last_name, user.username)
    if isinstance(origin, MessageOriginHiddenUser):
        return ForwardOrigin(first_name=origin.sender_user_name)
    if isinstance(origin, MessageOriginChat):
        return ForwardOrigin(first_name=origin.sender_chat.title, username=origin.sender_chat.username)
    if isinstance(origin, MessageOriginChannel):
        return ForwardOrigin(first_name=origin.chat.title, username=origin.chat.username)
    return ForwardOrigin()


def to_case_message(message):
    return CaseMessage(
        chat_id=message.chat_id,
        message_id=message.message_id,
        text=message.text,
        caption=message.caption,
        forward_origin=to_forward_origin(message.forward_origin),
    )


def _is_allowed(update):
    return not ALLOWED_USERS or (update.effective_user and update.effective_user.id in ALLOWED_USERS)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle incoming messages: forwarded content, manual cases and operator names."""
    if update.message is None or not _is_allowed(update):
        return
    dispatcher = context.bot_data["dispatcher"]
    await dispatcher.handle_message(to_case_message(update.message))


async def handle_manual_confirmation(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle the yes/no buttons of the manual-creation question."""
    query = update.callback_query
    if not _is_allowed(update) or query.message is None:
        await query.answer()
        return
    dispatcher = context.bot_data["dispatcher"]
    await dispatcher.handle_confirmation(
        query.message.chat.id, query.id, query.data, prompt_message_id=query.message.message_id
    )


async def handle_error(update: object, context: ContextTypes.DEFAULT_TYPE):
    update_id = update.update_id if isinstance(update, Update) else None
    logger.error("[telegram] error while handling update %s", update_id, exc_info=context.error)
