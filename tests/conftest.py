# tests/conftest.py
import pytest
from typing import Generator
from fastapi.testclient import TestClient
from pytest_mock import MockerFixture

# Явно добавляем путь к проекту
import sys
import os
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from main import app
from src.auth.oauth import OAuthClient
from src.auth.resolver import CredentialResolver
from src.auth.service import AuthService
from src.core.config import Settings, get_settings
from src.core.dependencies import get_auth_service, get_credential_resolver, get_sheets_factory, get_token_store
from src.sheets.service import GoogleSheetsService
from src.store.backends import MemoryBackend
from src.store.token_store import TokenStore

# Фиксированное "сейчас" для всех проверок срока жизни токена
NOW_MS = 1_760_000_000_000

FRONTEND_URL = "http://localhost:5173"


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        GOOGLE_CLIENT_ID="test-client-id.apps.googleusercontent.com",
        GOOGLE_CLIENT_SECRET="test-client-secret",
        GOOGLE_REDIRECT_URI="http://localhost:8000/api/auth/google/callback",
        FRONTEND_URL=FRONTEND_URL,
        REDIS_URL=None,
        REDIS_TOKEN=None,
    )


@pytest.fixture
def memory_store(test_settings: Settings) -> TokenStore:
    return TokenStore(test_settings, backend=MemoryBackend())


@pytest.fixture
def fake_oauth(mocker: MockerFixture):
    """OAuthClient без сети: все вызовы настраиваются в тесте."""
    return mocker.create_autospec(OAuthClient, instance=True)


@pytest.fixture
def fake_sheets(mocker: MockerFixture):
    return mocker.create_autospec(GoogleSheetsService, instance=True)


@pytest.fixture
def used_credentials() -> list:
    """Сюда фабрика таблиц складывает credential, с которым её вызвали."""
    return []


@pytest.fixture
def client(
    test_settings: Settings,
    memory_store: TokenStore,
    fake_oauth,
    fake_sheets,
    used_credentials: list,
) -> Generator[TestClient, None, None]:
    def sheets_factory(credential):
        used_credentials.append(credential)
        return fake_sheets

    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_token_store] = lambda: memory_store
    app.dependency_overrides[get_credential_resolver] = lambda: CredentialResolver(
        memory_store, fake_oauth, clock=lambda: NOW_MS
    )
    app.dependency_overrides[get_sheets_factory] = lambda: sheets_factory
    app.dependency_overrides[get_auth_service] = lambda: AuthService(
        memory_store,
        test_settings,
        oauth_factory=lambda settings: fake_oauth,
        sheets_factory=sheets_factory,
    )

    yield TestClient(app)

    app.dependency_overrides.clear()
