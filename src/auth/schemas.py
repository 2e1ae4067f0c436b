# src/auth/schemas.py
from typing import Optional

from pydantic import BaseModel


class DisconnectRequest(BaseModel):
    userId: Optional[str] = None


class DisconnectResponse(BaseModel):
    success: bool = True
    wasConnected: bool


class ConnectionStatus(BaseModel):
    connected: bool
    sheetUrl: Optional[str] = None
    spreadsheetId: Optional[str] = None
    connectedAt: Optional[str] = None
