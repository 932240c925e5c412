from telegram.helpers import escape_markdown

MANUAL_CASE_YES = "manual_case_yes"
MANUAL_CASE_NO = "manual_case_no"

MANUAL_CASE_QUESTION = "Сообщение не является пересланным. Создать кейс вручную?"
MANUAL_CASE_BUTTONS = [
    [("Да, создать", MANUAL_CASE_YES), ("Нет, отмена", MANUAL_CASE_NO)],
]
MANUAL_CASE_ACCEPTED = "Понял. Теперь, пожалуйста, отправьте ваше имя для регистрации кейса."
MANUAL_CASE_CANCELLED = "Действие отменено."
STALE_ACTION = "Это действие уже неактуально."

OVERLOADED = "Бот в данный момент перегружен. Пожалуйста, попробуйте позже."
NAME_REQUIRED = "❌ Пожалуйста, отправьте ваше имя в виде текста."
SINK_FAILED = "❌ Произошла критическая ошибка при записи в Google таблицу. Проверьте логи сервера."

MANUAL_CUSTOMER_INFO = "Создан вручную"
NO_TEXT_PLACEHOLDER = "Сообщение не содержит текста (возможно, медиа)."
NO_TEXT_AT_ALL = "Сообщения не содержат текста."
STATUS_NEW = "Новый"


def grouped_prompt(message_count):
    """Ask for the operator name once the grouping window has closed."""
    if message_count > 1:
        return (
            f"Принято {message_count} сообщений. Они будут объединены.\n\n"
            "Теперь, пожалуйста, отправьте ваше имя."
        )
    return "Сообщение принято. Теперь, пожалуйста, отправьте ваше имя."


def case_registered(case_id, operator_name, message_count):
    """MarkdownV2 confirmation sent after the case reached the sheet."""
    return (
        "✅ Кейс зарегистрирован\\!\n\n"
        f"*ID Кейса:* `{escape_markdown(case_id, version=2, entity_type='code')}`\n"
        f"*Оператор:* `{escape_markdown(operator_name, version=2, entity_type='code')}`\n"
        f"*Сообщений в кейсе:* `{message_count}`"
    )
