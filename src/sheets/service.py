# src/sheets/service.py
import logging
from typing import Any, Dict, List, Optional, Tuple

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build

from src.auth.resolver import BearerCredential
from src.store.models import sheet_url_for, utc_now_iso
from .schemas import AppendLogRequest, LogEntry

logger = logging.getLogger(__name__)

SPREADSHEET_TITLE = "Auristitutum Habit Logs"
SHEET_TITLE = "Logs"
HEADER_ROW = ["Date", "Habit", "Type", "Status", "Value", "Synced At"]

APPEND_RANGE = f"{SHEET_TITLE}!A:F"
DATA_RANGE = f"{SHEET_TITLE}!A2:F"  # без строки заголовка


def entry_to_row(entry: AppendLogRequest, now_iso: Optional[str] = None) -> List[str]:
    return [
        entry.date,
        entry.habit.strip(),
        entry.type or "",
        entry.status or "logged",
        str(entry.value) if entry.value is not None else "",
        entry.timestamp or now_iso or utc_now_iso(),
    ]


def log_to_row(log: Dict[str, Any], now_iso: Optional[str] = None) -> List[str]:
    """Лог из приложения -> строка таблицы. Поля неверного типа заменяем пустыми."""

    def text(field: str, default: str = "") -> str:
        value = log.get(field)
        return value if isinstance(value, str) else default

    value = log.get("value")
    return [
        text("date"),
        text("habit"),
        text("type"),
        text("status", "logged"),
        str(value) if value is not None else "",
        text("timestamp") or now_iso or utc_now_iso(),
    ]


def row_to_entry(row: List[Any]) -> LogEntry:
    cells = [str(cell) for cell in row[:6]] + [""] * (6 - min(len(row), 6))
    return LogEntry(
        date=cells[0],
        habit=cells[1],
        type=cells[2],
        status=cells[3],
        value=cells[4],
        timestamp=cells[5],
    )


class GoogleSheetsService:
    """
    Обёртка над Google Sheets API v4 для таблицы с логами привычек.
    HttpError от Google не перехватываем, это делает роутер.
    """

    def __init__(self, creds: Credentials):
        if not creds:
            raise ValueError("Credentials are required to initialize GoogleSheetsService")
        self.creds = creds
        self.service: Resource = build("sheets", "v4", credentials=self.creds, cache_discovery=False)

    @classmethod
    def from_credential(cls, credential: BearerCredential) -> "GoogleSheetsService":
        return cls(credential.to_google_credentials())

    def create_spreadsheet(self) -> Tuple[str, str]:
        """
        Создаёт новую таблицу с листом Logs, пишет и оформляет заголовок.

        Returns:
            (spreadsheet_id, sheet_url)
        """
        spreadsheets = self.service.spreadsheets()
        created = spreadsheets.create(
            body={
                "properties": {"title": SPREADSHEET_TITLE},
                "sheets": [
                    {
                        "properties": {
                            "title": SHEET_TITLE,
                            "gridProperties": {"frozenRowCount": 1},
                        }
                    }
                ],
            }
        ).execute()

        spreadsheet_id = created["spreadsheetId"]
        sheet_id = created["sheets"][0]["properties"]["sheetId"]
        logger.info(f"Created spreadsheet {spreadsheet_id}")

        spreadsheets.values().update(
            spreadsheetId=spreadsheet_id,
            range=f"{SHEET_TITLE}!A1:F1",
            valueInputOption="RAW",
            body={"values": [HEADER_ROW]},
        ).execute()

        # Заголовок: жирный, серый фон, по центру, первая строка закреплена
        spreadsheets.batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={
                "requests": [
                    {
                        "repeatCell": {
                            "range": {
                                "sheetId": sheet_id,
                                "startRowIndex": 0,
                                "endRowIndex": 1,
                                "startColumnIndex": 0,
                                "endColumnIndex": len(HEADER_ROW),
                            },
                            "cell": {
                                "userEnteredFormat": {
                                    "backgroundColor": {"red": 0.88, "green": 0.88, "blue": 0.88},
                                    "textFormat": {"bold": True, "fontSize": 11},
                                    "horizontalAlignment": "CENTER",
                                }
                            },
                            "fields": "userEnteredFormat(backgroundColor,textFormat,horizontalAlignment)",
                        }
                    },
                    {
                        "updateSheetProperties": {
                            "properties": {
                                "sheetId": sheet_id,
                                "gridProperties": {"frozenRowCount": 1},
                            },
                            "fields": "gridProperties.frozenRowCount",
                        }
                    },
                ]
            },
        ).execute()

        return spreadsheet_id, sheet_url_for(spreadsheet_id)

    def append_rows(self, spreadsheet_id: str, rows: List[List[str]], range_: str = APPEND_RANGE) -> None:
        # INSERT_ROWS: каждая запись добавляет новую строку, ничего не перезаписывая
        self.service.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=range_,
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": rows},
        ).execute()
        logger.info(f"Appended {len(rows)} row(s) to spreadsheet {spreadsheet_id}")

    def replace_logs(self, spreadsheet_id: str, rows: List[List[str]]) -> int:
        """Полная синхронизация: чистим всё кроме заголовка и пишем заново."""
        self.service.spreadsheets().values().clear(
            spreadsheetId=spreadsheet_id,
            range=DATA_RANGE,
            body={},
        ).execute()
        self.append_rows(spreadsheet_id, rows, range_=DATA_RANGE)
        return len(rows)

    def read_logs(self, spreadsheet_id: str) -> List[LogEntry]:
        result = self.service.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=DATA_RANGE,
        ).execute()

        rows = result.get("values", [])
        entries = [row_to_entry(row) for row in rows]
        # Строки без даты или названия привычки пропускаем
        return [entry for entry in entries if entry.date.strip() and entry.habit.strip()]
