"""Configuration loaded from environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()


# Telegram
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
ALLOWED_USERS = [
    int(uid.strip())
    for uid in os.getenv("TELEGRAM_ALLOWED_USER_IDS", "").split(",")
    if uid.strip()
]

# Google Sheets
SPREADSHEET_ID = os.getenv("SPREADSHEET_ID", "")
GOOGLE_CREDENTIALS_PATH = os.getenv(
    "GOOGLE_CREDENTIALS_PATH", "./data/credentials/service_account.json"
)
SHEET_NAME = os.getenv("SHEET_NAME", "Лист1")
MAX_DATA_ROW = int(os.getenv("MAX_DATA_ROW", "199"))
SINK_MAX_RETRIES = int(os.getenv("SINK_MAX_RETRIES", "3"))

# Case grouping
MAX_PENDING_CASES = int(os.getenv("MAX_PENDING_CASES", "1000"))
PENDING_CASE_TTL_MINUTES = float(os.getenv("PENDING_CASE_TTL_MINUTES", "15"))
CLEANUP_INTERVAL_MINUTES = float(os.getenv("CLEANUP_INTERVAL_MINUTES", "5"))
MESSAGE_GROUPING_DELAY_SECONDS = float(
    os.getenv("MESSAGE_GROUPING_DELAY_SECONDS", "5")
)

# Agent
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
