# src/state/router.py
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, status

from src.core.dependencies import ensure_user_id, get_token_store, require_user_id
from src.core.exceptions import HabitSheetsError, to_http_exception
from src.store.token_store import TokenStore
from . import schemas

# Снимок состояния трекера (привычки, логи) для переноса между устройствами
router = APIRouter(
    prefix="/api/state",
    tags=["State"],
)
logger = logging.getLogger(__name__)


@router.get("/get", response_model=schemas.StateResponse, summary="Load app state snapshot")
def get_state(
    user_id: str = Depends(require_user_id),
    store: TokenStore = Depends(get_token_store),
):
    try:
        return schemas.StateResponse(state=store.get_state(user_id))
    except HabitSheetsError as e:
        logger.error(f"Failed to load state for {user_id}: {e.message}")
        raise to_http_exception(e)


@router.post("/set", response_model=schemas.SetStateResponse, summary="Save app state snapshot")
def set_state(
    payload: schemas.SetStateRequest,
    store: TokenStore = Depends(get_token_store),
):
    user_id = ensure_user_id(payload.userId)
    if payload.state is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="state object is required")

    snapshot = {**payload.state, "updatedAt": int(time.time() * 1000)}
    try:
        store.set_state(user_id, snapshot)
    except HabitSheetsError as e:
        logger.error(f"Failed to save state for {user_id}: {e.message}")
        raise to_http_exception(e)
    return schemas.SetStateResponse()
