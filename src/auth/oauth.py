# src/auth/oauth.py
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from google.auth.transport import requests as google_requests
from google.oauth2 import _client as google_oauth_client
from google_auth_oauthlib.flow import Flow
from pydantic import BaseModel

from src.core.config import Settings
from src.core.exceptions import ConfigurationError, ReauthRequired, TokenExchangeError

logger = logging.getLogger(__name__)

# Google может вернуть scopes в другом составе (например, уже выданные ранее),
# oauthlib в этом случае по умолчанию бросает Warning
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Минимальный набор:
#   spreadsheets -> чтение/запись таблицы с логами
#   drive.file   -> создание таблиц на Drive пользователя (только своих)
# Полный drive НЕ запрашиваем.
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
]


class TokenSet(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expiry_date: Optional[int] = None  # epoch ms


def expiry_to_epoch_ms(expiry: Optional[datetime]) -> Optional[int]:
    # google-auth хранит expiry как naive UTC
    if expiry is None:
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return int(expiry.timestamp() * 1000)


class TimeoutRequest(google_requests.Request):
    """Транспорт google-auth с ограниченным временем ожидания."""

    def __init__(self, timeout: float, session=None):
        super().__init__(session=session)
        self.timeout = timeout

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        return super().__call__(
            url, method=method, body=body, headers=headers, timeout=timeout or self.timeout, **kwargs
        )


class OAuthClient:
    """
    Конфигурация OAuth-клиента Google без собственного состояния:
    строит ссылку на экран согласия, меняет code на токены и обновляет access_token.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: Optional[List[str]] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes or SCOPES)
        self.timeout = timeout

    def _flow(self) -> Flow:
        client_config = {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }
        # Callback обрабатывается другим запросом, поэтому без PKCE:
        # code_verifier негде было бы сохранить
        return Flow.from_client_config(
            client_config=client_config,
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, user_id: str, login_hint: Optional[str] = None) -> str:
        """
        Ссылка на экран согласия Google.

        access_type=offline нужен, чтобы Google выдал refresh_token.
        В state передаём userId, по нему callback найдёт пользователя.
        """
        params = {"access_type": "offline", "state": user_id}
        if login_hint:
            params["login_hint"] = login_hint
        url, _ = self._flow().authorization_url(**params)
        return url

    def exchange_code(self, code: str) -> TokenSet:
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.error(f"Authorization code exchange failed: {e}", exc_info=True)
            if "invalid_grant" in str(e):
                raise TokenExchangeError(f"Token exchange failed: {e}") from e
            raise TokenExchangeError(f"Token exchange failed: {e}", hint="Please try connecting again.") from e

        credentials = flow.credentials
        if not credentials or not credentials.token:
            raise TokenExchangeError("Could not obtain valid tokens from Google.")

        return TokenSet(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expiry_date=expiry_to_epoch_ms(credentials.expiry),
        )

    def refresh(self, refresh_token: str) -> TokenSet:
        """
        Один POST на token endpoint с таймаутом self.timeout.
        can_retry=False: повторы google-auth с backoff отключены.
        """
        try:
            access_token, _, expiry, response = google_oauth_client.refresh_grant(
                TimeoutRequest(self.timeout),
                TOKEN_URI,
                refresh_token,
                self.client_id,
                self.client_secret,
                scopes=self.scopes,
                can_retry=False,
            )
        except Exception as e:
            if "invalid_grant" in str(e).lower():
                logger.error("Error 'invalid_grant' received. Refresh token might be revoked or expired.")
            else:
                logger.error(f"Error refreshing access token: {e}", exc_info=True)
            raise ReauthRequired(f"Google token refresh failed ({e}).") from e

        if not access_token:
            raise ReauthRequired("Google token refresh returned no access token.")

        logger.info(f"Access token refreshed: {access_token[:8]}...")
        return TokenSet(
            access_token=access_token,
            # Новый refresh_token Google присылает не всегда
            refresh_token=response.get("refresh_token"),
            expiry_date=expiry_to_epoch_ms(expiry),
        )


def create_oauth_client(settings: Settings) -> OAuthClient:
    """Собирает OAuthClient из настроек. Без сетевых вызовов."""
    required = {
        "GOOGLE_CLIENT_ID": settings.GOOGLE_CLIENT_ID,
        "GOOGLE_CLIENT_SECRET": settings.GOOGLE_CLIENT_SECRET,
        "GOOGLE_REDIRECT_URI": settings.GOOGLE_REDIRECT_URI,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        logger.error(f"Google OAuth is not configured, missing: {missing}")
        raise ConfigurationError(
            missing=missing,
            hint="Set them in the deployment environment. GOOGLE_REDIRECT_URI must match the one registered in Google Cloud Console.",
        )

    return OAuthClient(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        timeout=settings.OAUTH_TIMEOUT_SECONDS,
    )
