"""EligibilityStatus model — durable per-(customer, target) eligibility record.

Created lazily on first evaluation and mutated only by the engine. Never
deleted. `activated_at` and `eligible_since` are set-once fields; see
src.eligibility.state for the rules.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, Numeric, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, CustomerTargetMixin, TimestampMixin
from src.models.enums import LifecycleState


class EligibilityStatus(CustomerTargetMixin, TimestampMixin, Base):
    """Latest eligibility state of one customer for one account type or service."""

    __tablename__ = "customer_eligibility_status"
    __table_args__ = (
        UniqueConstraint("customer_id", "target_type", "target_code", name="uq_eligibility_customer_target"),
        CheckConstraint("eligibility_score >= 0 AND eligibility_score <= 100", name="ck_eligibility_score_range"),
        CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100", name="ck_eligibility_progress_range"
        ),
    )

    # Eligibility state
    is_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    is_activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    eligibility_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    progress_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))

    # Per-condition snapshots (camelCase keys, as served to the API layer)
    conditions_met: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONB, default=list)
    conditions_missing: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONB, default=list)
    estimated_days_to_eligibility: Mapped[int | None] = mapped_column(Integer)

    # Timestamps
    last_evaluated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    eligible_since: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Notification bookkeeping
    last_progress_milestone: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Config
    auto_activate_when_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def lifecycle_state(self) -> LifecycleState:
        """Position in NOT_EVALUATED → INELIGIBLE ⇄ ELIGIBLE → ACTIVATED."""
        if self.is_activated:
            return LifecycleState.ACTIVATED
        if self.last_evaluated_at is None:
            return LifecycleState.NOT_EVALUATED
        return LifecycleState.ELIGIBLE if self.is_eligible else LifecycleState.INELIGIBLE

    def __repr__(self) -> str:
        return (
            f"<EligibilityStatus customer={self.customer_id} {self.target_type}:{self.target_code} "
            f"eligible={self.is_eligible} activated={self.is_activated} score={self.eligibility_score}>"
        )
