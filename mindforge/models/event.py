"""Product analytics events (append-only)."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class UserEvent(SQLModel, table=True):
    __tablename__ = "user_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    event_name: str = Field(index=True, max_length=128)
    properties: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    page: Optional[str] = Field(default=None, nullable=True, max_length=512)
    server_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
