"""
User Model
==========

Local mirror of the identity provider's account, plus the subscription
state written by payment webhooks.

``id`` is the Clerk user id and is the ``user_id`` every other table
references.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_INACTIVE = "inactive"
SUBSCRIPTION_PAST_DUE = "past_due"


class User(SQLModel, table=True):
    """Account row, created by the Clerk webhook or lazily on first save."""

    __tablename__ = "users"

    id: str = Field(primary_key=True, max_length=128)
    email: Optional[str] = Field(default=None, nullable=True, index=True, max_length=320)
    first_name: Optional[str] = Field(default=None, nullable=True, max_length=128)
    last_name: Optional[str] = Field(default=None, nullable=True, max_length=128)
    image_url: Optional[str] = Field(default=None, nullable=True, max_length=1024)

    subscription_status: str = Field(default=SUBSCRIPTION_INACTIVE, max_length=32)
    subscription_plan: Optional[str] = Field(default=None, nullable=True, max_length=32)
    stripe_customer_id: Optional[str] = Field(default=None, nullable=True, index=True, max_length=255)
    subscription_started_at: Optional[datetime] = Field(default=None, nullable=True)

    onboarding_completed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_subscribed(self) -> bool:
        return self.subscription_status == SUBSCRIPTION_ACTIVE
