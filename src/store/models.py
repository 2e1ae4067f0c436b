# src/store/models.py
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def sheet_url_for(spreadsheet_id: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit"


class StoredTokens(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: Optional[str] = None
    expiry_date: Optional[int] = None  # epoch ms


class CredentialRecord(BaseModel):
    """
    Запись пользователя в хранилище: токены Google и ссылка на его таблицу.
    Неизменяемая: обновление = новая запись через model_copy(update=...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # None допускаем только при чтении, резолвер считает такую запись битой
    tokens: Optional[StoredTokens] = None
    spreadsheet_id: Optional[str] = Field(None, alias="spreadsheetId")
    sheet_url: Optional[str] = Field(None, alias="sheetUrl")
    connected_at: Optional[str] = Field(None, alias="connectedAt")

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
