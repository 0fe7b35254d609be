"""AuditLog model — append-only trail of system events.

Every SystemEvent (activations, activation failures, evaluation-log write
failures, batch summaries) is persisted here by the audit subscriber.
Evaluation outcomes themselves live in eligibility_evaluation_logs.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin


class AuditLog(TimestampMixin, Base):
    """Immutable audit trail entry."""

    __tablename__ = "audit_log"

    # Event classification
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Context (all nullable; batch events have no customer)
    customer_id: Mapped[int | None] = mapped_column(Integer, index=True)
    actor_id: Mapped[str | None] = mapped_column(String(100), comment="Customer ID, admin ID, or 'system'")
    actor_role: Mapped[str | None] = mapped_column(String(50), comment="customer, admin, system, job")

    # Event data: flexible JSONB payload
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONB)

    def __repr__(self) -> str:
        return f"<AuditLog event={self.event_type} customer={self.customer_id}>"
