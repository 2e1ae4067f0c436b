# src/sheets/schemas.py
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class AppendLogRequest(BaseModel):
    userId: Optional[str] = None
    habit: Optional[str] = None
    date: Optional[str] = Field(None, description="YYYY-MM-DD")
    type: Optional[str] = Field(None, description="Good / Bad")
    status: Optional[str] = None
    value: Optional[Union[str, int, float]] = Field(None, description="Count / unit value")
    timestamp: Optional[str] = Field(None, description="ISO timestamp, defaults to now")


class SyncLogsRequest(BaseModel):
    userId: Optional[str] = None
    # Поля каждого лога проверяются мягко, см. service.log_to_row
    logs: Optional[List[Dict[str, Any]]] = None


class LogEntry(BaseModel):
    date: str = ""
    habit: str = ""
    type: str = ""
    status: str = ""
    value: str = ""
    timestamp: str = ""


class SuccessResponse(BaseModel):
    success: bool = True


class SyncLogsResponse(BaseModel):
    success: bool = True
    count: int


class GetLogsResponse(BaseModel):
    logs: List[LogEntry]
