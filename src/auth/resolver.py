# src/auth/resolver.py
import logging
import time
from typing import Callable, Dict, Optional

from google.oauth2.credentials import Credentials as GoogleCredentials
from pydantic import BaseModel, ConfigDict

from src.core.exceptions import CorruptState, NotConnected, ReauthRequired
from src.store.models import CredentialRecord, StoredTokens
from src.store.token_store import TokenStore
from .oauth import OAuthClient

logger = logging.getLogger(__name__)

# Обновляем токен заранее: запас на расхождение часов и время самого запроса
SKEW_MARGIN_MS = 60_000


def now_ms() -> int:
    return int(time.time() * 1000)


def needs_refresh(tokens: StoredTokens, now: int) -> bool:
    expires_at = tokens.expiry_date or 0
    return expires_at > 0 and now >= expires_at - SKEW_MARGIN_MS


class BearerCredential(BaseModel):
    """То, что нужно клиенту API: заголовок Authorization: Bearer <token>."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    expiry_date: Optional[int] = None

    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def to_google_credentials(self) -> GoogleCredentials:
        # expiry не передаём: у google-auth свой порог "истёк", шире нашего,
        # и без refresh_token он попытался бы обновиться и упал
        return GoogleCredentials(token=self.access_token)


class ResolvedClient(BaseModel):
    model_config = ConfigDict(frozen=True)

    credential: BearerCredential
    spreadsheet_id: Optional[str] = None


class CredentialResolver:
    """
    Возвращает рабочий access_token пользователя и id его таблицы.

    Порядок:
      1. нет записи                    -> NotConnected
      2. запись без tokens             -> CorruptState
      3. токен живёт дольше 60 секунд  -> отдаём как есть
      4. иначе ровно одна попытка refresh; успех -> сохраняем новую запись,
         неудача -> ReauthRequired, хранилище не трогаем.

    Повторов нет. Refresh для одного userId сериализуется блокировкой
    хранилища, после неё запись перечитывается.
    """

    def __init__(self, store: TokenStore, oauth_client: OAuthClient, clock: Callable[[], int] = now_ms):
        self.store = store
        self.oauth_client = oauth_client
        self.clock = clock

    def resolve(self, user_id: str) -> ResolvedClient:
        record = self._load(user_id)
        if not needs_refresh(record.tokens, self.clock()):
            return self._resolved(record)

        logger.info(f"Access token for user {user_id} is expired or expiring, refreshing.")
        with self.store.refresh_lock(user_id):
            # Пока ждали блокировку, токен мог обновить параллельный запрос
            record = self._load(user_id)
            if needs_refresh(record.tokens, self.clock()):
                record = self._refresh(user_id, record)
            else:
                logger.info(f"Token for user {user_id} was already refreshed by a concurrent request.")
        return self._resolved(record)

    def _load(self, user_id: str) -> CredentialRecord:
        record = self.store.get(user_id)
        if record is None:
            raise NotConnected()
        if record.tokens is None:
            logger.error(f"Stored record for user {user_id} has no tokens.")
            raise CorruptState()
        return record

    def _refresh(self, user_id: str, record: CredentialRecord) -> CredentialRecord:
        tokens = record.tokens
        if not tokens.refresh_token:
            logger.error(f"User {user_id} has an expired access token and no refresh token.")
            raise ReauthRequired("Google access expired and no refresh token is stored.")

        try:
            refreshed = self.oauth_client.refresh(tokens.refresh_token)
        except ReauthRequired:
            raise
        except Exception as e:
            logger.error(f"Token refresh for user {user_id} failed: {e}", exc_info=True)
            raise ReauthRequired(f"Google token refresh failed ({e}).") from e

        # Google выдаёт refresh_token только при первом согласии, старый не теряем
        new_tokens = StoredTokens(
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token or tokens.refresh_token,
            expiry_date=refreshed.expiry_date,
        )
        updated = record.model_copy(update={"tokens": new_tokens})
        self.store.set(user_id, updated)
        logger.info(f"Refreshed tokens persisted for user {user_id}.")
        return updated

    @staticmethod
    def _resolved(record: CredentialRecord) -> ResolvedClient:
        return ResolvedClient(
            credential=BearerCredential(
                access_token=record.tokens.access_token,
                expiry_date=record.tokens.expiry_date,
            ),
            spreadsheet_id=record.spreadsheet_id,
        )
