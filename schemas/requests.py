from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.application import CamelModel


class LoginRequest(CamelModel):
    email: str
    password: str


class MessageCreate(CamelModel):
    message: str


class PushTokenRegister(CamelModel):
    token: str = Field(min_length=1)


class BroadcastRequest(CamelModel):
    recipients: list[str] = Field(default_factory=list)
    title: str = ""
    message: str = ""
    # None sends immediately
    scheduled_for: Optional[datetime] = None


class MarkReadRequest(CamelModel):
    ids: list[str] = Field(default_factory=list)
