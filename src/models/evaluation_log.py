"""EvaluationLog model — one immutable row per evaluation call.

Append-only compliance trail: written whether or not anything changed,
never updated, never deleted by the engine.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, CustomerTargetMixin, TimestampMixin


class EvaluationLog(CustomerTargetMixin, TimestampMixin, Base):
    """Snapshot of one (customer, target) evaluation and its outcome."""

    __tablename__ = "eligibility_evaluation_logs"
    __table_args__ = (Index("ix_evaluation_logs_target", "target_type", "target_code"),)

    # Before / after
    previous_eligibility: Mapped[bool | None] = mapped_column(Boolean, comment="NULL on first evaluation")
    new_eligibility: Mapped[bool] = mapped_column(Boolean, nullable=False)
    previous_score: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    new_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    # Full per-condition evaluator output
    conditions_evaluated: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    # Cause and effect
    trigger_event: Mapped[str] = mapped_column(String(30), nullable=False, comment="TriggerEvent enum value")
    action_taken: Mapped[str] = mapped_column(String(20), nullable=False, comment="ActionTaken enum value")
    notification_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    evaluated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return (
            f"<EvaluationLog customer={self.customer_id} {self.target_code} "
            f"{self.previous_eligibility}->{self.new_eligibility} action={self.action_taken}>"
        )
