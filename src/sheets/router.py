# src/sheets/router.py
import logging
import re
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, status
from googleapiclient.errors import HttpError

from src.auth.resolver import BearerCredential, CredentialResolver
from src.core.dependencies import ensure_user_id, get_credential_resolver, get_sheets_factory, require_user_id
from src.core.exceptions import HabitSheetsError, to_http_exception
from . import schemas
from .service import GoogleSheetsService, entry_to_row, log_to_row

router = APIRouter(
    prefix="/api",
    tags=["Sheets"],
)
logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SheetsFactory = Callable[[BearerCredential], GoogleSheetsService]


def handle_google_api_error(e: HttpError, user_id: str, action: str):
    """Преобразует HttpError от Google в HTTPException."""
    status_code = e.resp.status if hasattr(e, "resp") else 500
    logger.error(f"Google Sheets API error during '{action}' for user {user_id}: {status_code} - {e}", exc_info=True)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Google Sheets API error: {e.reason}",
    )


def open_sheets(user_id: str, resolver: CredentialResolver, sheets_factory: SheetsFactory):
    try:
        resolved = resolver.resolve(user_id)
    except HabitSheetsError as e:
        logger.warning(f"Could not resolve Google credentials for user {user_id}: {e.message}")
        raise to_http_exception(e)
    if not resolved.spreadsheet_id:
        logger.error(f"User {user_id} has tokens but no spreadsheetId.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No spreadsheet is linked to this account. Please reconnect Google Sheets in Settings.",
        )
    return sheets_factory(resolved.credential), resolved.spreadsheet_id


@router.post("/append-log", response_model=schemas.SuccessResponse, summary="Append one habit log row")
def append_log(
    payload: schemas.AppendLogRequest,
    resolver: CredentialResolver = Depends(get_credential_resolver),
    sheets_factory: SheetsFactory = Depends(get_sheets_factory),
):
    user_id = ensure_user_id(payload.userId)
    if not payload.habit or not payload.habit.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="habit name is required")
    if not payload.date or not DATE_PATTERN.match(payload.date):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="date is required and must be in YYYY-MM-DD format")

    sheets, spreadsheet_id = open_sheets(user_id, resolver, sheets_factory)
    try:
        sheets.append_rows(spreadsheet_id, [entry_to_row(payload)])
    except HttpError as e:
        handle_google_api_error(e, user_id, "append_log")
    return schemas.SuccessResponse()


@router.post("/sync-logs", response_model=schemas.SyncLogsResponse, summary="Replace all rows with the app's log history")
def sync_logs(
    payload: schemas.SyncLogsRequest,
    resolver: CredentialResolver = Depends(get_credential_resolver),
    sheets_factory: SheetsFactory = Depends(get_sheets_factory),
):
    user_id = ensure_user_id(payload.userId)
    if payload.logs is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="logs must be an array")
    if not payload.logs:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="logs array must not be empty - nothing to sync")

    sheets, spreadsheet_id = open_sheets(user_id, resolver, sheets_factory)
    rows = [log_to_row(log) for log in payload.logs]
    try:
        count = sheets.replace_logs(spreadsheet_id, rows)
    except HttpError as e:
        handle_google_api_error(e, user_id, "sync_logs")
    return schemas.SyncLogsResponse(count=count)


@router.get("/get-logs", response_model=schemas.GetLogsResponse, summary="Read log rows back from the sheet")
def get_logs(
    user_id: str = Depends(require_user_id),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    sheets_factory: SheetsFactory = Depends(get_sheets_factory),
):
    sheets, spreadsheet_id = open_sheets(user_id, resolver, sheets_factory)
    try:
        logs = sheets.read_logs(spreadsheet_id)
    except HttpError as e:
        handle_google_api_error(e, user_id, "get_logs")
    return schemas.GetLogsResponse(logs=logs)
