import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone

import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from casebot.core.case import sanitize_cell

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
CASE_ID_TZ = timezone(timedelta(hours=3))
CASE_ID_FORMAT = "%m%dT%H%M"
DEFAULT_MAX_DATA_ROW = 199
DEFAULT_MAX_RETRIES = 3


class SinkError(Exception):
    pass


class SheetFullError(SinkError):
    pass


class SinkRetryExhaustedError(SinkError):
    pass


def is_transient(exc):
    """Rate limits, server errors and connectivity problems are worth retrying."""
    if isinstance(exc, HttpError):
        return exc.resp.status == 429 or exc.resp.status >= 500
    return isinstance(exc, (TimeoutError, ConnectionError, httplib2.ServerNotFoundError))


class CaseIdSequence:
    """Readable case ids: minute of creation (UTC+3) plus a 01..99 wrapping counter."""

    def __init__(self, clock=None):
        self._clock = clock or (lambda: datetime.now(CASE_ID_TZ))
        self._counter = 0
        self._lock = threading.Lock()

    def next_id(self):
        with self._lock:
            self._counter += 1
            seq = (self._counter - 1) % 99 + 1
        return f"{self._clock().strftime(CASE_ID_FORMAT)}-{seq:02d}"


def load_service(credentials_path):
    credentials = service_account.Credentials.from_service_account_file(
        credentials_path, scopes=SCOPES
    )
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


class GoogleSheetsSink:
    """Writes finished cases into the first free row of a worksheet."""

    def __init__(
        self,
        spreadsheet_id,
        sheet_name,
        service,
        max_data_row=DEFAULT_MAX_DATA_ROW,
        max_retries=DEFAULT_MAX_RETRIES,
        id_sequence=None,
        sleep=asyncio.sleep,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.service = service
        self.max_data_row = max_data_row
        self.max_retries = max_retries
        self.id_sequence = id_sequence or CaseIdSequence()
        self._sleep = sleep
        # row lookup and write must not interleave between cases
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_credentials_file(cls, spreadsheet_id, sheet_name, credentials_path, **kwargs):
        try:
            service = load_service(credentials_path)
        except Exception:
            logger.critical(
                "[sink] could not initialise Google Sheets, check credentials at %s",
                credentials_path,
            )
            raise
        return cls(spreadsheet_id, sheet_name, service, **kwargs)

    async def append(self, timestamp, operator_name, customer_info, problem_text, status):
        """Write one case row and return its generated case id."""
        case_id = self.id_sequence.next_id()
        values = [
            sanitize_cell(case_id),
            sanitize_cell(timestamp),
            None,
            None,
            sanitize_cell(operator_name),
            sanitize_cell(customer_info),
            sanitize_cell(problem_text),
            sanitize_cell(status),
            False,
            False,
        ]

        async with self._write_lock:
            await self._write_with_retries(case_id, values)

        logger.info("[sink] case %s written", case_id)
        return case_id

    async def _write_with_retries(self, case_id, values):
        attempt = 0
        while True:
            try:
                await asyncio.to_thread(self._write_row, case_id, values)
                return
            except SheetFullError:
                raise
            except Exception as e:
                if not is_transient(e):
                    raise
                if attempt >= self.max_retries:
                    raise SinkRetryExhaustedError(
                        f"Google Sheets write failed after {attempt + 1} attempts"
                    ) from e
                attempt += 1
                delay = 2 ** attempt
                logger.warning(
                    "[sink] Google Sheets API error, attempt %d, retrying in %ss: %s",
                    attempt, delay, e,
                )
                await self._sleep(delay)

    def _write_row(self, case_id, values):
        target_row = self.find_first_empty_row()
        cell = f"'{self.sheet_name}'!A{target_row}"
        logger.info("[sink] free row %d, writing case %s to %s", target_row, case_id, cell)
        self.service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=cell,
            valueInputOption="RAW",
            body={"values": [values]},
        ).execute()

    def find_first_empty_row(self):
        """1-based index of the first row whose column A is empty."""
        result = self.service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id,
            range=f"'{self.sheet_name}'!A1:A{self.max_data_row}",
        ).execute()

        rows = result.get("values", [])
        for idx, row in enumerate(rows, start=1):
            if not row or row[0] in (None, ""):
                return idx

        if len(rows) < self.max_data_row:
            return len(rows) + 1

        logger.error("[sink] all rows up to %d are taken", self.max_data_row)
        raise SheetFullError(
            f"No free row to write to, the sheet is full up to row {self.max_data_row}"
        )
