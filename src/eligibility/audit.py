"""Audit logger — one EvaluationLog row per evaluation call.

The row is written inside a SAVEPOINT so a failed write never rolls back the
EligibilityStatus update it describes. Failures surface as a system.error
event instead.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.eligibility.state import StateChange
from src.models.enums import ActionTaken, TriggerEvent
from src.models.evaluation_log import EvaluationLog
from src.observability.events import emit
from src.schemas.eligibility import ConditionOutcome, ScoreResult
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class AuditLogger:
    """Appends to eligibility_evaluation_logs; never raises."""

    async def record(
        self,
        db: AsyncSession,
        change: StateChange,
        outcomes: list[ConditionOutcome],
        result: ScoreResult,
        trigger_event: TriggerEvent,
        action_taken: ActionTaken,
        notification_id: uuid.UUID | None,
        now: datetime,
    ) -> EvaluationLog | None:
        status = change.status
        entry = EvaluationLog(
            customer_id=status.customer_id,
            target_type=status.target_type,
            target_code=status.target_code,
            previous_eligibility=change.previous_eligibility,
            new_eligibility=result.is_eligible,
            previous_score=change.previous_score,
            new_score=result.score,
            conditions_evaluated={
                "transition": change.transition.value,
                "conditions": [o.to_record() for o in outcomes],
                "progress": float(result.progress),
                "estimatedDays": result.estimated_days,
            },
            trigger_event=trigger_event.value,
            action_taken=action_taken.value,
            notification_id=notification_id,
            evaluated_at=now,
        )
        try:
            async with db.begin_nested():
                db.add(entry)
                await db.flush()
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to write evaluation log: customer=%s target=%s",
                status.customer_id,
                status.target_code,
            )
            await emit(SystemEvent(
                event_type=EventType.SYSTEM_ERROR,
                customer_id=status.customer_id,
                actor_id="system",
                actor_role="system",
                data={
                    "error": "evaluation_log_write_failed",
                    "detail": str(exc),
                    "target_type": status.target_type,
                    "target_code": status.target_code,
                },
                source_module="eligibility.audit",
            ))
            return None
        return entry


# Module-level singleton
audit_logger = AuditLogger()
