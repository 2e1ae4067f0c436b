import logging
from typing import Callable, Optional

from googleapiclient.errors import HttpError

from src.core.config import Settings
from src.core.exceptions import CorruptState, SheetsApiError
from src.sheets.service import GoogleSheetsService
from src.store.models import CredentialRecord, StoredTokens, sheet_url_for, utc_now_iso
from src.store.token_store import TokenStore
from .oauth import OAuthClient, create_oauth_client
from .resolver import BearerCredential
from .schemas import ConnectionStatus

logger = logging.getLogger(__name__)


class AuthService:
    """
    Сервисный слой подключения Google Sheets: ссылка на экран согласия,
    обработка callback, статус подключения и отключение.
    """

    def __init__(
        self,
        store: TokenStore,
        settings: Settings,
        oauth_factory: Callable[[Settings], OAuthClient] = create_oauth_client,
        sheets_factory: Callable[[BearerCredential], GoogleSheetsService] = GoogleSheetsService.from_credential,
    ):
        self.store = store
        self.settings = settings
        self.oauth_factory = oauth_factory
        self.sheets_factory = sheets_factory

    def build_authorization_url(self, user_id: str, login_hint: Optional[str] = None) -> str:
        oauth_client = self.oauth_factory(self.settings)
        logger.info(f"Starting Google Sheets connection for user {user_id}")
        return oauth_client.authorization_url(user_id, login_hint=login_hint)

    def complete_authorization(self, user_id: str, code: str) -> CredentialRecord:
        """
        Меняет code на токены, создаёт таблицу (или берёт уже существующую)
        и сохраняет запись пользователя.

        Raises:
            ConfigurationError, TokenExchangeError, SheetsApiError, BackendUnavailable
        """
        oauth_client = self.oauth_factory(self.settings)
        tokens = oauth_client.exchange_code(code)

        # Битую запись считаем первым подключением. Недоступное хранилище
        # пробрасываем: иначе создали бы вторую таблицу для того же пользователя
        try:
            existing = self.store.get(user_id)
        except CorruptState:
            logger.warning(f"Existing record for user {user_id} is corrupted, treating as a first-time connection.")
            existing = None

        spreadsheet_id = existing.spreadsheet_id if existing else None
        sheet_url = existing.sheet_url if existing else None

        if not spreadsheet_id:
            sheets = self.sheets_factory(BearerCredential(access_token=tokens.access_token, expiry_date=tokens.expiry_date))
            try:
                spreadsheet_id, sheet_url = sheets.create_spreadsheet()
            except HttpError as e:
                logger.error(f"Failed to create spreadsheet for user {user_id}: {e}", exc_info=True)
                raise SheetsApiError(f"Failed to create spreadsheet: {e.reason}") from e
        else:
            logger.info(f"Reusing spreadsheet {spreadsheet_id} for user {user_id}")

        previous_tokens = existing.tokens if existing else None
        if not tokens.refresh_token and not (previous_tokens and previous_tokens.refresh_token):
            logger.warning(f"Google did not issue a refresh token for user {user_id} and none is stored.")

        record = CredentialRecord(
            tokens=StoredTokens(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token or (previous_tokens.refresh_token if previous_tokens else None),
                expiry_date=tokens.expiry_date,
            ),
            spreadsheet_id=spreadsheet_id,
            sheet_url=sheet_url or sheet_url_for(spreadsheet_id),
            # При переподключении дата первого подключения сохраняется
            connected_at=(existing.connected_at if existing and existing.connected_at else utc_now_iso()),
        )
        self.store.set(user_id, record)
        logger.info(f"Google Sheets connected for user {user_id}")
        return record

    def get_status(self, user_id: str) -> ConnectionStatus:
        record = self.store.get(user_id)
        if record is None:
            return ConnectionStatus(connected=False)
        return ConnectionStatus(
            connected=True,
            sheetUrl=record.sheet_url,
            spreadsheetId=record.spreadsheet_id,
            connectedAt=record.connected_at,
        )

    def disconnect(self, user_id: str) -> bool:
        """Удаляет запись целиком. Возвращает, было ли что удалять."""
        existed = self.store.exists(user_id)
        self.store.delete(user_id)
        logger.info(f"Disconnected user {user_id} (was connected: {existed})")
        return existed
