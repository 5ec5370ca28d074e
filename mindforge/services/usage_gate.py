"""
Usage Gate: Reserve-Before-Spend Free-Tier Metering
===================================================

PURPOSE:
    Decide whether a user may run a metered (paid upstream) operation and,
    when the user is on the free tier, durably spend one unit of quota
    BEFORE the caller starts the expensive call.

POLICY:
    - Subscribers (users.subscription_status == "active") are always
      allowed and their counter is never touched.
    - Free users with units_consumed >= limit are denied; nothing is written.
    - Free users below the limit get units_consumed += 1, committed before
      check_and_reserve returns. That unit stays spent whatever happens
      next (LLM failure, timeout, client disconnect). There is no refund path.
    - If the increment cannot be committed the gate fails closed with
      ReservationPersistenceFailure and the caller must not proceed.

STATE MACHINE (per user, per action):
    NEW (no row) → UNDER_LIMIT → AT_LIMIT
    SUBSCRIBED is orthogonal and suppresses the limit check.
    AT_LIMIT is only left through a subscription webhook.

CONCURRENCY:
    The check and the increment are a single conditional UPDATE
    (``... SET units = units + 1 WHERE units < :limit``). Parallel requests
    for one user serialize on the row, so at most ``limit`` reservations
    ever succeed. A request that loses the race sees rowcount == 0 and is
    denied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mindforge.config import settings
from mindforge.core.database import get_engine
from mindforge.core.errors import MindforgeError
from mindforge.models.usage import UsageCounter
from mindforge.models.user import SUBSCRIPTION_ACTIVE, User

logger = logging.getLogger(__name__)

__all__ = [
    "MINDMAP_ACTION",
    "CounterState",
    "GateDecision",
    "QuotaExceeded",
    "ReservationPersistenceFailure",
    "SQLUsageCounterStore",
    "SubscriptionRequired",
    "UsageCounterStore",
    "UsageGate",
    "usage_gate",
]

MINDMAP_ACTION = "mindmap"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class QuotaExceeded(MindforgeError):
    """Free-tier allowance used up. Expected condition, not a server fault."""

    def __init__(self, units_consumed: int, limit: int, action: str = MINDMAP_ACTION) -> None:
        self.units_consumed = units_consumed
        self.limit = limit
        super().__init__(
            "MF-USG-001",
            detail=f"{action}: {units_consumed}/{limit} free units used",
            context={"action": action, "units_consumed": units_consumed, "limit": limit},
            payload={"unitsConsumed": units_consumed, "limit": limit, "upgradeRequired": True},
        )


class ReservationPersistenceFailure(MindforgeError):
    """The quota increment could not be durably recorded."""

    def __init__(self, user_id: str, action: str, cause: Exception) -> None:
        super().__init__(
            "MF-USG-002",
            detail=f"usage reservation failed: {type(cause).__name__}: {cause}",
            context={"user_id": user_id, "action": action},
        )


class SubscriptionRequired(MindforgeError):
    def __init__(self, feature: str) -> None:
        super().__init__(
            "MF-USG-003",
            detail=f"{feature} requires an active subscription",
            context={"feature": feature},
            payload={"requiresUpgrade": True, "feature": feature},
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CounterState:
    is_subscribed: bool
    units_consumed: int


@dataclass(frozen=True)
class GateDecision:
    """Outcome of check_and_reserve.

    ``reserved`` is True only when this call spent a unit.
    """

    allowed: bool
    units_consumed: int
    limit: int
    is_subscribed: bool = False
    reserved: bool = False

    def to_dict(self) -> dict:
        if self.allowed:
            return {"allowed": True, "unitsConsumed": self.units_consumed}
        return {"allowed": False, "unitsConsumed": self.units_consumed, "limit": self.limit}


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class UsageCounterStore(Protocol):
    def load(self, user_id: str, action: str) -> CounterState:
        """Subscription flag and current units; defaults for unknown users."""
        ...

    def try_increment(self, user_id: str, action: str, limit: int) -> Optional[int]:
        """Atomically add one unit if below ``limit``. New value, or None if denied."""
        ...


class SQLUsageCounterStore:
    """Counter store on the application database via SQLAlchemy Core.

    Each method runs in its own ``engine.begin()`` transaction.
    """

    def __init__(self) -> None:
        self._counters = UsageCounter.__table__
        self._users = User.__table__

    def _counter_filter(self, user_id: str, action: str):
        return sa.and_(self._counters.c.user_id == user_id, self._counters.c.action == action)

    def load(self, user_id: str, action: str) -> CounterState:
        with get_engine().begin() as conn:
            status = conn.execute(
                sa.select(self._users.c.subscription_status).where(self._users.c.id == user_id)
            ).scalar()
            units = conn.execute(
                sa.select(self._counters.c.units_consumed).where(self._counter_filter(user_id, action))
            ).scalar()
        return CounterState(
            is_subscribed=status == SUBSCRIPTION_ACTIVE,
            units_consumed=units or 0,
        )

    def _create_row(self, user_id: str, action: str) -> None:
        now = datetime.now(timezone.utc)
        try:
            with get_engine().begin() as conn:
                conn.execute(
                    self._counters.insert().values(
                        user_id=user_id,
                        action=action,
                        units_consumed=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            # A concurrent request created it first
            logger.debug("usage_counter_exists", extra={"user_id": user_id, "action": action})

    def try_increment(self, user_id: str, action: str, limit: int) -> Optional[int]:
        counters = self._counters
        for _ in range(2):
            with get_engine().begin() as conn:
                result = conn.execute(
                    counters.update()
                    .where(self._counter_filter(user_id, action))
                    .where(counters.c.units_consumed < limit)
                    .values(
                        units_consumed=counters.c.units_consumed + 1,
                        updated_at=datetime.now(timezone.utc),
                    )
                )
                if result.rowcount == 1:
                    return conn.execute(
                        sa.select(counters.c.units_consumed).where(self._counter_filter(user_id, action))
                    ).scalar_one()
                row_exists = conn.execute(
                    sa.select(counters.c.id).where(self._counter_filter(user_id, action))
                ).first() is not None
            if row_exists:
                return None
            # NEW → UNDER_LIMIT: create the row lazily, then retry the update
            self._create_row(user_id, action)
        return None


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

class UsageGate:
    """Free-tier gate. Stateless apart from its store."""

    def __init__(self, store: Optional[UsageCounterStore] = None, default_limit: Optional[int] = None) -> None:
        self.store = store or SQLUsageCounterStore()
        self._default_limit = default_limit

    @property
    def default_limit(self) -> int:
        if self._default_limit is not None:
            return self._default_limit
        return settings.free_tier_mindmap_limit

    def peek(self, user_id: str, action: str = MINDMAP_ACTION) -> CounterState:
        """Read-only view of the counter for usage displays."""
        return self.store.load(user_id, action)

    def check_and_reserve(
        self,
        user_id: str,
        limit: Optional[int] = None,
        action: str = MINDMAP_ACTION,
    ) -> GateDecision:
        """Allow or deny one metered operation, spending a unit on allow.

        Raises:
            ReservationPersistenceFailure: the store could not read or
                commit; the caller must not start the operation.
        """
        limit = self.default_limit if limit is None else limit

        try:
            state = self.store.load(user_id, action)
        except SQLAlchemyError as exc:
            logger.error("usage_gate_load_failed", extra={"user_id": user_id, "action": action, "error": str(exc)})
            raise ReservationPersistenceFailure(user_id, action, exc) from exc

        if state.is_subscribed:
            logger.info(
                "usage_gate_allowed",
                extra={"user_id": user_id, "action": action, "subscribed": True, "units_consumed": state.units_consumed},
            )
            return GateDecision(
                allowed=True,
                units_consumed=state.units_consumed,
                limit=limit,
                is_subscribed=True,
            )

        if state.units_consumed >= limit:
            return self._deny(user_id, action, state.units_consumed, limit)

        try:
            new_units = self.store.try_increment(user_id, action, limit)
        except SQLAlchemyError as exc:
            logger.error(
                "usage_gate_reservation_failed",
                extra={"user_id": user_id, "action": action, "error": str(exc)},
            )
            raise ReservationPersistenceFailure(user_id, action, exc) from exc

        if new_units is None:
            # Lost the race to a concurrent reservation
            return self._deny(user_id, action, limit, limit)

        logger.info(
            "usage_gate_allowed",
            extra={"user_id": user_id, "action": action, "units_consumed": new_units, "limit": limit},
        )
        return GateDecision(allowed=True, units_consumed=new_units, limit=limit, reserved=True)

    def reserve_or_raise(
        self,
        user_id: str,
        limit: Optional[int] = None,
        action: str = MINDMAP_ACTION,
    ) -> GateDecision:
        """check_and_reserve, raising QuotaExceeded on deny."""
        decision = self.check_and_reserve(user_id, limit=limit, action=action)
        if not decision.allowed:
            raise QuotaExceeded(decision.units_consumed, decision.limit, action=action)
        return decision

    def require_subscription(self, user_id: str, feature: str) -> None:
        """Pro-only features: raise SubscriptionRequired for free users."""
        try:
            state = self.store.load(user_id, MINDMAP_ACTION)
        except SQLAlchemyError as exc:
            raise ReservationPersistenceFailure(user_id, feature, exc) from exc
        if not state.is_subscribed:
            logger.info("subscription_required", extra={"user_id": user_id, "feature": feature})
            raise SubscriptionRequired(feature)

    def _deny(self, user_id: str, action: str, units: int, limit: int) -> GateDecision:
        logger.info(
            "usage_gate_denied",
            extra={"user_id": user_id, "action": action, "units_consumed": units, "limit": limit},
        )
        return GateDecision(allowed=False, units_consumed=units, limit=limit)


# Module-level singleton
usage_gate = UsageGate()
