"""Eligibility engine — orchestrates one evaluation per (customer, target).

Per target, in one transaction:
    catalog → evaluator → scorer → state store (row lock) →
    activation trigger + notification dispatcher → audit logger

Targets are evaluated in separate transactions, so one failing target never
rolls back another. The fact snapshot is taken once per evaluate() call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.engine import async_session_factory
from src.eligibility.activation import ActivationTrigger, activation_trigger
from src.eligibility.audit import AuditLogger, audit_logger
from src.eligibility.catalog import ConditionCatalog, condition_catalog
from src.eligibility.errors import ActivationFailedError
from src.eligibility.evaluator import ConditionEvaluator, condition_evaluator
from src.eligibility.facts import FactProvider, fact_provider
from src.eligibility.scorer import EligibilityScorer, eligibility_scorer
from src.eligibility.state import EligibilityStateStore, state_store
from src.eligibility.targets import (
    all_targets,
    find_target,
    normalize_target,
    parse_target_type,
    target_codes,
    target_name,
)
from src.models.eligibility_status import EligibilityStatus
from src.models.enums import ActionTaken, TargetType, Transition, TriggerEvent
from src.notifications.dispatcher import NotificationDispatcher, notification_dispatcher
from src.observability.events import emit
from src.schemas.eligibility import (
    EligibilityOverview,
    EligibilityResult,
    FactSnapshot,
    NextMilestone,
    StatusSummary,
    TargetStatus,
)
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


@dataclass
class TargetRun:
    """Result of one target evaluation, plus a deferred synchronous-activation failure."""

    result: EligibilityResult
    activation_error: ActivationFailedError | None = None


class EligibilityEngine:
    """Entry point for evaluate() and get_status().

    Every collaborator is injectable; the defaults are the module singletons.
    """

    def __init__(
        self,
        catalog: ConditionCatalog | None = None,
        facts: FactProvider | None = None,
        evaluator: ConditionEvaluator | None = None,
        scorer: EligibilityScorer | None = None,
        store: EligibilityStateStore | None = None,
        activation: ActivationTrigger | None = None,
        notifier: NotificationDispatcher | None = None,
        audit: AuditLogger | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._catalog = catalog or condition_catalog
        self._facts = facts or fact_provider
        self._evaluator = evaluator or condition_evaluator
        self._scorer = scorer or eligibility_scorer
        self._store = store or state_store
        self._activation = activation or activation_trigger
        self._notifier = notifier or notification_dispatcher
        self._audit = audit or audit_logger
        self._session_factory = session_factory or async_session_factory

    # ── Evaluation ───────────────────────────────────────────────────

    async def evaluate_target(
        self,
        db: AsyncSession,
        facts: FactSnapshot,
        target_type: TargetType,
        target_code: str,
        trigger_event: TriggerEvent,
        require_activation: bool = False,
    ) -> TargetRun:
        """Evaluate one target inside the caller's transaction."""
        now = datetime.now(timezone.utc)
        customer_id = facts.customer_id

        specs = await self._catalog.active_conditions(db, target_type, target_code)
        outcomes = self._evaluator.evaluate_all(specs, facts)
        score = self._scorer.score(outcomes)
        change = await self._store.apply(db, customer_id, target_type, target_code, score, now)

        activation_error: ActivationFailedError | None = None
        try:
            activated = await self._activation.on_transition(
                db, change, now, require_activation=require_activation
            )
        except ActivationFailedError as exc:
            activated = False
            activation_error = exc

        notification = await self._notifier.on_transition(db, change, now)

        if activated:
            action = ActionTaken.ACTIVATED
        elif notification is not None:
            action = ActionTaken.NOTIFIED
        else:
            action = ActionTaken.NONE

        await self._audit.record(
            db,
            change,
            outcomes,
            score,
            trigger_event,
            action,
            notification.id if notification is not None else None,
            now,
        )

        if change.transition in (Transition.BECAME_ELIGIBLE, Transition.LOST_ELIGIBILITY):
            gained = change.transition == Transition.BECAME_ELIGIBLE
            logger.info(
                "Customer %s %s eligibility for %s:%s (score=%s)",
                customer_id,
                "gained" if gained else "lost",
                target_type.value,
                target_code,
                score.score,
            )
            await emit(SystemEvent(
                event_type=EventType.ELIGIBILITY_GAINED if gained else EventType.ELIGIBILITY_LOST,
                customer_id=customer_id,
                actor_id="system",
                actor_role="system",
                data={
                    "target_type": target_type.value,
                    "target_code": target_code,
                    "score": float(score.score),
                    "trigger_event": trigger_event.value,
                },
                source_module="eligibility.engine",
            ))

        result = EligibilityResult(
            target_type=target_type,
            target_code=target_code,
            is_eligible=score.is_eligible,
            is_activated=change.status.is_activated,
            score=score.score,
            progress=score.progress,
            conditions_met=[o.to_record() for o in score.conditions_met],
            conditions_missing=[o.to_record() for o in score.conditions_missing],
            estimated_days=score.estimated_days,
            action_taken=action.value,
        )
        return TargetRun(result=result, activation_error=activation_error)

    async def evaluate(
        self,
        customer_id: int,
        target_type: TargetType | str | None = None,
        target_code: str | None = None,
        trigger_event: TriggerEvent = TriggerEvent.MANUAL,
        require_activation: bool = False,
        isolate_failures: bool = True,
    ) -> list[EligibilityResult]:
        """Evaluate one target, every target of one type, or every known target.

        With several targets, a failing target is logged and skipped unless
        isolate_failures is False. A single requested target always raises.

        Raises:
            UnknownTargetError: target_type/target_code is not a known target.
            FactLookupError: the fact snapshot could not be obtained.
            ActivationFailedError: require_activation and the activation call failed
                (eligibility is still recorded).
        """
        targets = self._resolve_targets(target_type, target_code)
        facts = await self._facts.snapshot(customer_id)

        results: list[EligibilityResult] = []
        for ttype, code in targets:
            try:
                run = await self._run_in_transaction(facts, ttype, code, trigger_event, require_activation)
            except Exception:
                if len(targets) == 1 or not isolate_failures:
                    raise
                logger.exception(
                    "Evaluation of %s:%s failed for customer %s",
                    ttype.value,
                    code,
                    customer_id,
                )
                continue

            if run.activation_error is not None:
                raise run.activation_error
            results.append(run.result)

        return results

    async def _run_in_transaction(
        self,
        facts: FactSnapshot,
        target_type: TargetType,
        target_code: str,
        trigger_event: TriggerEvent,
        require_activation: bool,
    ) -> TargetRun:
        async with self._session_factory() as db:
            async with db.begin():
                return await self.evaluate_target(
                    db, facts, target_type, target_code, trigger_event, require_activation
                )

    def _resolve_targets(
        self, target_type: TargetType | str | None, target_code: str | None
    ) -> list[tuple[TargetType, str]]:
        if target_code is not None:
            if target_type is None:
                return [find_target(target_code)]
            return [normalize_target(target_type, target_code)]
        if target_type is not None:
            return all_targets(parse_target_type(target_type))
        return all_targets()

    # ── Status ───────────────────────────────────────────────────────

    async def get_status(self, customer_id: int) -> EligibilityOverview:
        """Stored statuses plus dashboard summary. Read only."""
        async with self._session_factory() as db:
            rows = await self._store.list_for_customer(db, customer_id)
        return build_overview(rows)


def _to_target_status(row: EligibilityStatus) -> TargetStatus:
    target_type = TargetType(row.target_type)
    return TargetStatus(
        target_type=target_type,
        target_code=row.target_code,
        target_name=target_name(target_type, row.target_code),
        is_eligible=row.is_eligible,
        is_activated=row.is_activated,
        score=row.eligibility_score,
        progress=row.progress_percentage,
        estimated_days=row.estimated_days_to_eligibility,
        conditions_met=row.conditions_met or [],
        conditions_missing=row.conditions_missing or [],
        last_evaluated_at=row.last_evaluated_at,
        eligible_since=row.eligible_since,
        activated_at=row.activated_at,
    )


def build_overview(rows: list[EligibilityStatus]) -> EligibilityOverview:
    """Split rows by target type and compute the dashboard summary."""
    statuses = [_to_target_status(row) for row in rows]
    accounts = [s for s in statuses if s.target_type == TargetType.ACCOUNT]
    services = [s for s in statuses if s.target_type == TargetType.SERVICE]

    if statuses:
        mean = sum((s.progress for s in statuses), Decimal("0")) / len(statuses)
        overall = int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        overall = 0

    pending = [s for s in statuses if not s.is_eligible]
    closest = max(pending, key=lambda s: s.progress, default=None)
    next_milestone = (
        NextMilestone(
            target_type=closest.target_type,
            target_code=closest.target_code,
            progress=closest.progress,
            estimated_days=closest.estimated_days,
        )
        if closest is not None
        else None
    )

    return EligibilityOverview(
        accounts=accounts,
        services=services,
        summary=StatusSummary(
            total_accounts=len(target_codes(TargetType.ACCOUNT)),
            eligible_accounts=sum(1 for s in accounts if s.is_eligible),
            activated_accounts=sum(1 for s in accounts if s.is_activated),
            total_services=len(target_codes(TargetType.SERVICE)),
            eligible_services=sum(1 for s in services if s.is_eligible),
            activated_services=sum(1 for s in services if s.is_activated),
            overall_progress=overall,
            next_milestone=next_milestone,
        ),
    )


# Module-level singleton
eligibility_engine = EligibilityEngine()
