# tests/test_resolver.py
import pytest
from pytest_mock import MockerFixture

from src.auth.oauth import TokenSet
from src.auth.resolver import SKEW_MARGIN_MS, BearerCredential, CredentialResolver, needs_refresh
from src.core.exceptions import BackendUnavailable, CorruptState, NotConnected, ReauthRequired
from src.store.models import CredentialRecord, StoredTokens
from src.store.token_store import TokenStore

from conftest import NOW_MS

USER_ID = "firebase-uid-1"


def make_record(expiry_date, access_token="A", refresh_token="R", spreadsheet_id="S1") -> CredentialRecord:
    return CredentialRecord(
        tokens=StoredTokens(access_token=access_token, refresh_token=refresh_token, expiry_date=expiry_date),
        spreadsheet_id=spreadsheet_id,
        sheet_url=f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit",
        connected_at="2025-01-01T00:00:00Z",
    )


@pytest.fixture
def resolver(memory_store: TokenStore, fake_oauth) -> CredentialResolver:
    return CredentialResolver(memory_store, fake_oauth, clock=lambda: NOW_MS)


def test_unknown_user_is_not_connected(resolver, fake_oauth):
    with pytest.raises(NotConnected) as exc_info:
        resolver.resolve("never-connected")

    assert "Settings" in exc_info.value.hint
    fake_oauth.refresh.assert_not_called()


def test_record_without_tokens_is_corrupt(resolver, memory_store, fake_oauth):
    memory_store.set(USER_ID, CredentialRecord(spreadsheet_id="S1"))

    with pytest.raises(CorruptState):
        resolver.resolve(USER_ID)
    fake_oauth.refresh.assert_not_called()


def test_undecodable_record_is_corrupt(resolver, memory_store):
    memory_store.backend.set(f"at_user:{USER_ID}", "{not json")

    with pytest.raises(CorruptState):
        resolver.resolve(USER_ID)


def test_valid_token_is_returned_unchanged(resolver, memory_store, fake_oauth):
    record = make_record(NOW_MS + SKEW_MARGIN_MS + 1)
    memory_store.set(USER_ID, record)

    resolved = resolver.resolve(USER_ID)

    assert resolved.credential.access_token == "A"
    assert resolved.spreadsheet_id == "S1"
    assert memory_store.get(USER_ID) == record
    fake_oauth.refresh.assert_not_called()


@pytest.mark.parametrize("expiry_date", [None, 0])
def test_missing_expiry_is_treated_as_valid(resolver, memory_store, fake_oauth, expiry_date):
    memory_store.set(USER_ID, make_record(expiry_date))

    resolved = resolver.resolve(USER_ID)

    assert resolved.credential.access_token == "A"
    fake_oauth.refresh.assert_not_called()


@pytest.mark.parametrize("expiry_offset", [SKEW_MARGIN_MS, 1, 0, -1000])
def test_expiring_token_is_refreshed_once(resolver, memory_store, fake_oauth, expiry_offset):
    memory_store.set(USER_ID, make_record(NOW_MS + expiry_offset))
    fake_oauth.refresh.return_value = TokenSet(access_token="A2", expiry_date=NOW_MS + 3_600_000)

    resolved = resolver.resolve(USER_ID)

    fake_oauth.refresh.assert_called_once_with("R")
    assert resolved.credential.access_token == "A2"


def test_refresh_keeps_previous_refresh_token(resolver, memory_store, fake_oauth):
    memory_store.set(USER_ID, make_record(NOW_MS - 1000))
    # Google не прислал refresh_token
    fake_oauth.refresh.return_value = TokenSet(access_token="A2", expiry_date=NOW_MS + 3_600_000)

    resolver.resolve(USER_ID)

    stored = memory_store.get(USER_ID)
    assert stored.tokens.access_token == "A2"
    assert stored.tokens.refresh_token == "R"
    assert stored.tokens.expiry_date == NOW_MS + 3_600_000
    # остальное в записи не меняется
    assert stored.spreadsheet_id == "S1"
    assert stored.connected_at == "2025-01-01T00:00:00Z"


def test_refresh_stores_new_refresh_token_when_issued(resolver, memory_store, fake_oauth):
    memory_store.set(USER_ID, make_record(NOW_MS - 1000))
    fake_oauth.refresh.return_value = TokenSet(access_token="A2", refresh_token="R2", expiry_date=NOW_MS + 3_600_000)

    resolver.resolve(USER_ID)

    assert memory_store.get(USER_ID).tokens.refresh_token == "R2"


def test_failed_refresh_leaves_store_untouched(resolver, memory_store, fake_oauth):
    record = make_record(NOW_MS - 1000)
    memory_store.set(USER_ID, record)
    fake_oauth.refresh.side_effect = RuntimeError("invalid_grant: Token has been expired or revoked.")

    with pytest.raises(ReauthRequired) as exc_info:
        resolver.resolve(USER_ID)

    assert "reconnect" in exc_info.value.hint
    assert memory_store.get(USER_ID) == record
    fake_oauth.refresh.assert_called_once()


def test_reauth_error_from_client_is_passed_through(resolver, memory_store, fake_oauth):
    memory_store.set(USER_ID, make_record(NOW_MS - 1000))
    fake_oauth.refresh.side_effect = ReauthRequired("Google token refresh failed (invalid_grant).")

    with pytest.raises(ReauthRequired, match="invalid_grant"):
        resolver.resolve(USER_ID)


def test_expired_token_without_refresh_token_requires_reauth(resolver, memory_store, fake_oauth):
    memory_store.set(USER_ID, make_record(NOW_MS - 1000, refresh_token=None))

    with pytest.raises(ReauthRequired):
        resolver.resolve(USER_ID)
    fake_oauth.refresh.assert_not_called()


def test_store_failure_is_not_reported_as_not_connected(mocker: MockerFixture, fake_oauth):
    store = mocker.MagicMock(spec=TokenStore)
    store.get.side_effect = BackendUnavailable("Storage backend error during GET (Connection refused).")
    resolver = CredentialResolver(store, fake_oauth, clock=lambda: NOW_MS)

    with pytest.raises(BackendUnavailable):
        resolver.resolve(USER_ID)
    fake_oauth.refresh.assert_not_called()


def test_write_failure_after_refresh_is_backend_unavailable(mocker: MockerFixture, fake_oauth):
    store = mocker.MagicMock(spec=TokenStore)
    store.get.return_value = make_record(NOW_MS - 1000)
    store.set.side_effect = BackendUnavailable()
    fake_oauth.refresh.return_value = TokenSet(access_token="A2", expiry_date=NOW_MS + 3_600_000)
    resolver = CredentialResolver(store, fake_oauth, clock=lambda: NOW_MS)

    with pytest.raises(BackendUnavailable):
        resolver.resolve(USER_ID)


def test_refresh_done_by_concurrent_request_is_reused(mocker: MockerFixture, fake_oauth):
    # Первое чтение видит истёкший токен, после блокировки уже обновлённый
    store = mocker.MagicMock(spec=TokenStore)
    store.get.side_effect = [
        make_record(NOW_MS - 1000),
        make_record(NOW_MS + 3_600_000, access_token="A-fresh"),
    ]
    resolver = CredentialResolver(store, fake_oauth, clock=lambda: NOW_MS)

    resolved = resolver.resolve(USER_ID)

    assert resolved.credential.access_token == "A-fresh"
    store.refresh_lock.assert_called_once_with(USER_ID)
    fake_oauth.refresh.assert_not_called()
    store.set.assert_not_called()


def test_needs_refresh_boundary():
    tokens = StoredTokens(access_token="A", expiry_date=NOW_MS + SKEW_MARGIN_MS)
    assert needs_refresh(tokens, NOW_MS) is True
    assert needs_refresh(tokens, NOW_MS - 1) is False


def test_bearer_credential_header():
    credential = BearerCredential(access_token="ya29.token")

    assert credential.authorization_header() == {"Authorization": "Bearer ya29.token"}
    assert credential.to_google_credentials().token == "ya29.token"
