"""
Usage Models
============

- UsageCounter: free-tier ratchet, one row per (user, metered action).
  Written only by the usage gate; never decremented.
- MonthlyUsage: informational per-month PRD / code generation counts.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class UsageCounter(SQLModel, table=True):
    """Units consumed by a user for one metered action."""

    __tablename__ = "usage_counters"
    __table_args__ = (UniqueConstraint("user_id", "action", name="uq_usage_user_action"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    action: str = Field(max_length=64)
    units_consumed: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MonthlyUsage(SQLModel, table=True):
    __tablename__ = "monthly_usage"
    __table_args__ = (UniqueConstraint("user_id", "month_year", name="uq_monthly_usage_user_month"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    month_year: str = Field(max_length=7)  # YYYY-MM
    prd_count: int = Field(default=0)
    code_gen_count: int = Field(default=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
