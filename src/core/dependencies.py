# src/core/dependencies.py
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Query, status

from src.auth.oauth import create_oauth_client
from src.auth.resolver import BearerCredential, CredentialResolver
from src.auth.service import AuthService
from src.core.config import Settings, get_settings
from src.core.exceptions import HabitSheetsError, to_http_exception
from src.sheets.service import GoogleSheetsService
from src.store.token_store import TokenStore

# Один экземпляр хранилища на процесс. Создаётся при первом запросе,
# бэкенд внутри выбирается лениво (см. TokenStore)
_token_store: Optional[TokenStore] = None


def get_token_store(settings: Settings = Depends(get_settings)) -> TokenStore:
    global _token_store
    if _token_store is None:
        _token_store = TokenStore(settings)
    return _token_store


def get_auth_service(
    store: TokenStore = Depends(get_token_store),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(store, settings)


def get_credential_resolver(
    store: TokenStore = Depends(get_token_store),
    settings: Settings = Depends(get_settings),
) -> CredentialResolver:
    try:
        oauth_client = create_oauth_client(settings)
    except HabitSheetsError as e:
        raise to_http_exception(e)
    return CredentialResolver(store, oauth_client)


def get_sheets_factory() -> Callable[[BearerCredential], GoogleSheetsService]:
    return GoogleSheetsService.from_credential


def require_user_id(userId: Optional[str] = Query(None, description="Firebase UID or device ID")) -> str:
    return ensure_user_id(userId)


def ensure_user_id(user_id: Optional[str]) -> str:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userId is required")
    return user_id
