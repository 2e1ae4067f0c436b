# src/auth/router.py
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from src.core.config import Settings, get_settings
from src.core.dependencies import ensure_user_id, get_auth_service, require_user_id
from src.core.exceptions import CorruptState, HabitSheetsError, to_http_exception
from . import schemas
from .service import AuthService

router = APIRouter(
    prefix="/api/auth",
    tags=["Authentication"],
)
logger = logging.getLogger(__name__)


def frontend_base(request: Request, settings: Settings) -> str:
    """FRONTEND_URL или origin самого запроса (фронт и API на одном хосте)."""
    if settings.FRONTEND_URL:
        return settings.FRONTEND_URL.rstrip("/")
    host = request.headers.get("host", "")
    protocol = request.headers.get("x-forwarded-proto") or ("http" if "localhost" in host else "https")
    return f"{protocol}://{host}"


def settings_redirect(base: str, *, error: Optional[str] = None, sheet_url: Optional[str] = None) -> RedirectResponse:
    if error is not None:
        url = f"{base}/app/settings?sheets_error={quote(error, safe='')}"
    else:
        url = f"{base}/app/settings?sheets_connected=true&sheet_url={quote(sheet_url or '', safe='')}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/google", summary="Start Google Sheets connection")
def auth_google_start(
    request: Request,
    userId: Optional[str] = Query(None, description="Firebase UID, passed to Google as OAuth state"),
    userEmail: Optional[str] = Query(None, description="Used as login_hint"),
    settings: Settings = Depends(get_settings),
    auth_service: AuthService = Depends(get_auth_service),
):
    base = frontend_base(request, settings)
    if not userId:
        return settings_redirect(base, error="Missing user identity for Google Sheets connection.")

    try:
        auth_url = auth_service.build_authorization_url(userId, login_hint=userEmail)
    except HabitSheetsError as e:
        return settings_redirect(base, error=f"Google OAuth is not configured: {e.message}")
    return RedirectResponse(auth_url, status_code=status.HTTP_302_FOUND)


@router.get("/google/callback", summary="Google OAuth callback")
def auth_google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Сюда Google возвращает браузер после экрана согласия.
    JSON не отдаём никогда: только редирект обратно в настройки фронта.
    """
    base = frontend_base(request, settings)

    if error:
        logger.warning(f"Google returned an OAuth error: {error}")
        return settings_redirect(base, error=error)
    if not code:
        return settings_redirect(base, error="No authorisation code received from Google.")
    if not state:
        return settings_redirect(base, error="Missing state parameter. Please try connecting again.")

    try:
        record = auth_service.complete_authorization(state, code)
    except HabitSheetsError as e:
        logger.error(f"Google Sheets connection failed for user {state}: {e.message}")
        return settings_redirect(base, error=e.message)
    return settings_redirect(base, sheet_url=record.sheet_url)


@router.get(
    "/status",
    response_model=schemas.ConnectionStatus,
    response_model_exclude_none=True,
    summary="Google Sheets connection status",
)
def auth_status(
    user_id: str = Depends(require_user_id),
    auth_service: AuthService = Depends(get_auth_service),
):
    try:
        return auth_service.get_status(user_id)
    except CorruptState:
        # Запись всё равно придётся пересоздать, для экрана настроек это "не подключено"
        logger.error(f"Corrupted record while checking status for {user_id}")
        return schemas.ConnectionStatus(connected=False)
    except HabitSheetsError as e:
        raise to_http_exception(e)


@router.post("/disconnect", response_model=schemas.DisconnectResponse, summary="Disconnect Google Sheets")
def auth_disconnect(
    payload: schemas.DisconnectRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    user_id = ensure_user_id(payload.userId)
    try:
        was_connected = auth_service.disconnect(user_id)
    except HabitSheetsError as e:
        logger.error(f"Failed to delete user data for {user_id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to disconnect. Please try again.")
    return schemas.DisconnectResponse(wasConnected=was_connected)
