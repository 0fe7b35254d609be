"""ConditionSpec model — one configured business condition of a target.

Rows are authored by the back-office admin workflow and are read-only to the
eligibility engine. A spec that has been evaluated against is never edited in
place: it is deactivated and replaced by a new version, so evaluation logs
keep pointing at what was actually checked.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin
from src.models.enums import ConditionOperator


class ConditionSpec(TimestampMixin, Base):
    """A weighted, optionally mandatory condition attached to an account or service."""

    __tablename__ = "eligibility_conditions"
    __table_args__ = (
        UniqueConstraint("target_type", "target_code", "condition_key", name="uq_condition_target_key"),
        CheckConstraint("weight >= 0 AND weight <= 100", name="ck_condition_weight_range"),
    )

    # Target
    target_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="TargetType enum value")
    target_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True, comment="S01..S06, BOMBE, ...")

    # Classification
    condition_type: Mapped[str] = mapped_column(String(50), nullable=False, comment="ConditionType enum value")
    condition_key: Mapped[str] = mapped_column(String(100), nullable=False)
    condition_label: Mapped[str] = mapped_column(Text, nullable=False)
    condition_description: Mapped[str | None] = mapped_column(Text)

    # Evaluation parameters
    operator: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ConditionOperator.GREATER_THAN_OR_EQUAL.value
    )
    required_value: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, comment="Structured payload, e.g. {min, max, currency} or {values: [...]}"
    )

    # Scoring
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<ConditionSpec {self.target_code}.{self.condition_key} op={self.operator} w={self.weight}>"
