# src/state/schemas.py
from typing import Any, Dict, Optional

from pydantic import BaseModel


class SetStateRequest(BaseModel):
    userId: Optional[str] = None
    state: Optional[Dict[str, Any]] = None


class StateResponse(BaseModel):
    state: Optional[Dict[str, Any]] = None


class SetStateResponse(BaseModel):
    success: bool = True
