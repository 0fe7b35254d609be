"""Eligibility state store — the locked read-modify-write of EligibilityStatus.

All methods run inside the caller's transaction. Two evaluations of the same
(customer, target) serialize on the row lock taken by `apply()`; different
targets never contend.

Set-once rules:
- eligible_since: stamped on false→true only, kept on true→false
- activated_at: stamped by the single winner of `mark_activated()`
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import or_, select, tuple_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from src.models.eligibility_status import EligibilityStatus
from src.models.enums import TargetType, Transition
from src.schemas.eligibility import ScoreResult

logger = logging.getLogger(__name__)


@dataclass
class StateChange:
    """What one evaluation did to the stored row."""

    status: EligibilityStatus
    previous_eligibility: bool | None   # None when the row was created by this evaluation
    previous_score: Decimal | None
    previous_progress: Decimal
    transition: Transition
    created: bool = False


def compute_transition(was_eligible: bool, is_eligible: bool) -> Transition:
    if is_eligible:
        return Transition.STAYED_ELIGIBLE if was_eligible else Transition.BECAME_ELIGIBLE
    return Transition.LOST_ELIGIBILITY if was_eligible else Transition.STAYED_INELIGIBLE


def _row_filter(customer_id: int, target_type: TargetType, target_code: str) -> tuple:
    return (
        EligibilityStatus.customer_id == customer_id,
        EligibilityStatus.target_type == target_type.value,
        EligibilityStatus.target_code == target_code,
    )


class EligibilityStateStore:
    """Upsert and conditional updates of customer_eligibility_status rows."""

    async def lock_row(
        self,
        db: AsyncSession,
        customer_id: int,
        target_type: TargetType,
        target_code: str,
    ) -> tuple[EligibilityStatus, bool]:
        """Return the row locked FOR UPDATE, creating it if missing.

        The insert runs in a SAVEPOINT: when a concurrent evaluation wins the
        unique constraint, the savepoint is rolled back and the winner's row
        is read (and locked) instead.
        """
        stmt = (
            select(EligibilityStatus)
            .where(*_row_filter(customer_id, target_type, target_code))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        status = (await db.execute(stmt)).scalar_one_or_none()
        if status is not None:
            return status, False

        status = EligibilityStatus(
            customer_id=customer_id,
            target_type=target_type.value,
            target_code=target_code,
            is_eligible=False,
            is_activated=False,
            eligibility_score=Decimal("0"),
            progress_percentage=Decimal("0"),
            conditions_met=[],
            conditions_missing=[],
            last_progress_milestone=0,
            auto_activate_when_eligible=True,
        )
        try:
            async with db.begin_nested():
                db.add(status)
                await db.flush()
        except IntegrityError:
            logger.info(
                "Concurrent first evaluation of %s:%s for customer %s, reading winner's row",
                target_type.value,
                target_code,
                customer_id,
            )
            return (await db.execute(stmt)).scalar_one(), False

        return status, True

    async def apply(
        self,
        db: AsyncSession,
        customer_id: int,
        target_type: TargetType,
        target_code: str,
        result: ScoreResult,
        now: datetime,
    ) -> StateChange:
        """Write a fresh score onto the locked row and report the transition."""
        status, created = await self.lock_row(db, customer_id, target_type, target_code)

        was_eligible = bool(status.is_eligible)
        previous_score = None if created else status.eligibility_score
        previous_progress = status.progress_percentage
        transition = compute_transition(was_eligible, result.is_eligible)

        status.is_eligible = result.is_eligible
        status.eligibility_score = result.score
        status.progress_percentage = result.progress
        status.estimated_days_to_eligibility = result.estimated_days
        status.conditions_met = [o.to_record() for o in result.conditions_met]
        status.conditions_missing = [o.to_record() for o in result.conditions_missing]
        status.last_evaluated_at = now
        if transition == Transition.BECAME_ELIGIBLE:
            status.eligible_since = now

        await db.flush()

        return StateChange(
            status=status,
            previous_eligibility=None if created else was_eligible,
            previous_score=previous_score,
            previous_progress=previous_progress,
            transition=transition,
            created=created,
        )

    async def mark_activated(self, db: AsyncSession, status: EligibilityStatus, now: datetime) -> bool:
        """Set is_activated/activated_at unless already set. True if this call won."""
        stmt = (
            update(EligibilityStatus)
            .where(EligibilityStatus.id == status.id, EligibilityStatus.is_activated.is_(False))
            .values(is_activated=True, activated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        won = result.rowcount == 1
        if won:
            set_committed_value(status, "is_activated", True)
            set_committed_value(status, "activated_at", now)
        return won

    async def claim_notification_slot(
        self,
        db: AsyncSession,
        status: EligibilityStatus,
        cooldown: timedelta,
        now: datetime,
    ) -> bool:
        """Stamp last_notified_at if the cooldown has elapsed. True if claimed."""
        stmt = (
            update(EligibilityStatus)
            .where(
                EligibilityStatus.id == status.id,
                or_(
                    EligibilityStatus.last_notified_at.is_(None),
                    EligibilityStatus.last_notified_at < now - cooldown,
                ),
            )
            .values(last_notified_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        claimed = result.rowcount == 1
        if claimed:
            set_committed_value(status, "last_notified_at", now)
        return claimed

    async def list_for_customer(self, db: AsyncSession, customer_id: int) -> list[EligibilityStatus]:
        stmt = (
            select(EligibilityStatus)
            .where(EligibilityStatus.customer_id == customer_id)
            .order_by(EligibilityStatus.target_type, EligibilityStatus.target_code)
        )
        return list((await db.execute(stmt)).scalars().all())

    async def pending_activations(
        self,
        db: AsyncSession,
        after: tuple[int, str, str] | None,
        limit: int,
    ) -> list[EligibilityStatus]:
        """Eligible, auto-activating, not yet activated rows, keyset-paged and locked.

        Rows locked by a live evaluation are skipped; the next sweep picks
        them up if that evaluation did not activate them.
        """
        stmt = (
            select(EligibilityStatus)
            .where(
                EligibilityStatus.is_eligible.is_(True),
                EligibilityStatus.is_activated.is_(False),
                EligibilityStatus.auto_activate_when_eligible.is_(True),
            )
            .order_by(
                EligibilityStatus.customer_id,
                EligibilityStatus.target_type,
                EligibilityStatus.target_code,
            )
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        if after is not None:
            stmt = stmt.where(
                tuple_(
                    EligibilityStatus.customer_id,
                    EligibilityStatus.target_type,
                    EligibilityStatus.target_code,
                ) > tuple_(*after)
            )
        return list((await db.execute(stmt)).scalars().all())


# Module-level singleton
state_store = EligibilityStateStore()
