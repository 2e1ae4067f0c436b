# src/core/exceptions.py
from typing import Iterable, Optional

from fastapi import HTTPException, status


class HabitSheetsError(Exception):
    """
    Базовая ошибка сервиса. Сообщение и подсказка уходят пользователю как есть,
    поэтому пишем их по-человечески.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected server error."
    default_hint: str = "Please try again later."

    def __init__(self, message: Optional[str] = None, *, hint: Optional[str] = None):
        self.message = message or self.default_message
        self.hint = hint or self.default_hint
        super().__init__(self.message)

    @property
    def detail(self) -> str:
        return f"{self.message} {self.hint}"


class NotConnected(HabitSheetsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "User not connected to Google Sheets."
    default_hint = "Please connect via Settings → Google Sheets."


class CorruptState(HabitSheetsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Stored token data is corrupted."
    default_hint = "Please reconnect Google Sheets in Settings."


class ReauthRequired(HabitSheetsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Google token refresh failed."
    default_hint = "Please reconnect Google Sheets in Settings."


class BackendUnavailable(HabitSheetsError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Storage backend is unavailable."
    default_hint = "This is a temporary problem, please try again in a moment."


class ConfigurationError(HabitSheetsError):
    default_message = "Server is misconfigured."
    default_hint = "Ask the administrator to check the environment settings."

    def __init__(self, message: Optional[str] = None, *, missing: Iterable[str] = (), hint: Optional[str] = None):
        self.missing = list(missing)
        if message is None and self.missing:
            message = f"Missing required configuration: {', '.join(self.missing)}."
        super().__init__(message, hint=hint)


class StoreNotConfigured(ConfigurationError):
    default_message = "Persistent store is required but REDIS_URL / REDIS_TOKEN are not set."
    default_hint = "Set REDIS_URL and REDIS_TOKEN, or switch STORE_POLICY to 'permissive' for local development."


class TokenExchangeError(HabitSheetsError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Token exchange failed."
    default_hint = "The authorization code may be expired or already used. Please try connecting again."


class SheetsApiError(HabitSheetsError):
    default_message = "Google Sheets request failed."
    default_hint = "Please try again later."


def to_http_exception(error: HabitSheetsError) -> HTTPException:
    """Преобразует доменную ошибку в HTTPException для FastAPI."""
    return HTTPException(status_code=error.status_code, detail=error.detail)
