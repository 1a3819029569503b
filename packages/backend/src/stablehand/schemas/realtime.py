"""Pydantic schemas for realtime and admin endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ChannelsUpdate(BaseModel):
    channels: list[str] = Field(..., min_length=1, max_length=50)


class SubscriptionRead(BaseModel):
    connection_id: str
    channels: list[str]


class HistoryEventRead(BaseModel):
    channel: str
    event: str
    data: Any = None
    timestamp: datetime


class BroadcastCreate(BaseModel):
    event: str = Field(..., min_length=1, max_length=200)
    payload: Any = None
