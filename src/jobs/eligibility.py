"""Eligibility batch jobs — daily re-evaluation, activation sweep, notification upkeep.

- run_daily_check: every active customer, paged in chunks, each customer in
  its own transactions. Failures are recorded in a Redis set and only that
  subset is re-run by retry_failed_customers. A Redis SET NX EX lock keeps
  two runs from overlapping.
- reconcile_activations: retries activation of eligible, not-yet-activated rows
  whose first attempt failed.
- cleanup_notifications: expired → dismissed; dismissed past retention → deleted.
- send_motivation_notifications: nudges customers without recent activity.

Each job returns a summary dict and emits it as a system.maintenance event.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import redis.asyncio as aioredis

from src.config import settings
from src.db.engine import async_session_factory, redis_client
from src.eligibility.activation import ActivationTrigger, activation_trigger
from src.eligibility.engine import EligibilityEngine, eligibility_engine
from src.eligibility.facts import FactProvider, fact_provider
from src.eligibility.state import state_store
from src.integrations.core_banking.client import core_banking_client
from src.integrations.core_banking.schemas import CustomerPage
from src.models.enums import NotificationType, TargetType, TriggerEvent
from src.notifications.feed import notification_feed
from src.notifications.templates import build_motivation
from src.observability.events import emit
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

LOCK_KEY = "eligibility:daily_check:lock"
FAILED_KEY = "eligibility:daily_check:failed"


class CustomerDirectory(Protocol):
    """Source of active customer ids for batch runs."""

    async def list_active_customers(self, after: int | None, limit: int) -> CustomerPage: ...


# ── Helpers ──────────────────────────────────────────────────────────


async def _emit_summary(
    action: str,
    summary: dict[str, int],
    event_type: EventType = EventType.SYSTEM_MAINTENANCE,
) -> None:
    await emit(SystemEvent(
        event_type=event_type,
        actor_id="system",
        actor_role="job",
        data={"action": action, **summary},
        source_module="jobs.eligibility",
    ))


async def _evaluate_customers(
    engine: EligibilityEngine,
    customer_ids: list[int],
    trigger_event: TriggerEvent,
) -> list[int]:
    """Re-evaluate every target of each customer. Returns the ids that failed."""
    semaphore = asyncio.Semaphore(settings.eligibility.batch_concurrency)

    async def _one(customer_id: int) -> int | None:
        async with semaphore:
            try:
                await engine.evaluate(customer_id, trigger_event=trigger_event, isolate_failures=False)
            except Exception:
                logger.exception("Batch evaluation failed for customer %s", customer_id)
                return customer_id
            return None

    results = await asyncio.gather(*[_one(cid) for cid in customer_ids])
    return [cid for cid in results if cid is not None]


async def _release_lock(redis: aioredis.Redis, token: str) -> None:
    if await redis.get(LOCK_KEY) == token:
        await redis.delete(LOCK_KEY)


# ── Daily check ──────────────────────────────────────────────────────


async def run_daily_check(
    engine: EligibilityEngine | None = None,
    directory: CustomerDirectory | None = None,
    redis: aioredis.Redis | None = None,
) -> dict[str, int]:
    """Re-evaluate all active customers with trigger DAILY_CHECK."""
    engine = engine or eligibility_engine
    directory = directory or core_banking_client
    redis = redis or redis_client

    summary: dict[str, int] = {"customers": 0, "failed": 0, "chunks": 0, "skipped": 0}

    token = uuid.uuid4().hex
    acquired = await redis.set(LOCK_KEY, token, nx=True, ex=settings.eligibility.batch_lock_ttl_seconds)
    if not acquired:
        logger.warning("Daily eligibility check already running, skipping")
        summary["skipped"] = 1
        return summary

    await _emit_summary("daily_check", {}, EventType.BATCH_STARTED)
    try:
        await redis.delete(FAILED_KEY)
        cursor: int | None = None
        while True:
            page = await directory.list_active_customers(after=cursor, limit=settings.eligibility.batch_chunk_size)
            if not page.customer_ids:
                break

            summary["chunks"] += 1
            summary["customers"] += len(page.customer_ids)
            failed = await _evaluate_customers(engine, page.customer_ids, TriggerEvent.DAILY_CHECK)
            if failed:
                summary["failed"] += len(failed)
                await redis.sadd(FAILED_KEY, *[str(cid) for cid in failed])

            logger.info(
                "Daily check chunk %d: %d customers, %d failed",
                summary["chunks"],
                len(page.customer_ids),
                len(failed),
            )
            if page.next_cursor is None:
                break
            cursor = page.next_cursor
    finally:
        await _release_lock(redis, token)

    logger.info(
        "Daily check complete: customers=%d failed=%d chunks=%d",
        summary["customers"],
        summary["failed"],
        summary["chunks"],
    )
    await _emit_summary("daily_check", summary, EventType.BATCH_COMPLETED)
    return summary


async def retry_failed_customers(
    engine: EligibilityEngine | None = None,
    redis: aioredis.Redis | None = None,
) -> dict[str, int]:
    """Re-run only the customers that failed in the last daily check."""
    engine = engine or eligibility_engine
    redis = redis or redis_client

    members = await redis.smembers(FAILED_KEY)
    customer_ids = sorted(int(m) for m in members)
    summary: dict[str, int] = {"retried": len(customer_ids), "recovered": 0, "still_failing": 0}
    if not customer_ids:
        return summary

    chunk = settings.eligibility.batch_chunk_size
    for start in range(0, len(customer_ids), chunk):
        batch = customer_ids[start:start + chunk]
        failed = set(await _evaluate_customers(engine, batch, TriggerEvent.DAILY_CHECK))
        recovered = [cid for cid in batch if cid not in failed]
        if recovered:
            await redis.srem(FAILED_KEY, *[str(cid) for cid in recovered])
        summary["recovered"] += len(recovered)
        summary["still_failing"] += len(failed)

    logger.info(
        "Retry of failed customers: retried=%d recovered=%d still_failing=%d",
        summary["retried"],
        summary["recovered"],
        summary["still_failing"],
    )
    await _emit_summary("retry_failed_customers", summary)
    return summary


# ── Activation reconciliation ────────────────────────────────────────


async def reconcile_activations(trigger: ActivationTrigger | None = None) -> dict[str, int]:
    """Retry activation for eligible rows that are still not activated."""
    trigger = trigger or activation_trigger
    summary: dict[str, int] = {"attempted": 0, "activated": 0}

    after: tuple[int, str, str] | None = None
    while True:
        async with async_session_factory() as db:
            async with db.begin():
                rows = await state_store.pending_activations(db, after, settings.eligibility.batch_chunk_size)
                if not rows:
                    break
                now = datetime.now(UTC)
                for row in rows:
                    summary["attempted"] += 1
                    if await trigger.activate(db, row, now):
                        summary["activated"] += 1
                last = rows[-1]
                after = (last.customer_id, last.target_type, last.target_code)

    if summary["attempted"]:
        logger.info("Activation sweep: attempted=%d activated=%d", summary["attempted"], summary["activated"])
    await _emit_summary("activation_reconciliation", summary)
    return summary


# ── Notification upkeep ──────────────────────────────────────────────


async def cleanup_notifications() -> dict[str, int]:
    """Dismiss expired notifications and delete old dismissed ones."""
    now = datetime.now(UTC)
    cutoff = now - timedelta(days=settings.eligibility.notification_retention_days)

    async with async_session_factory() as db:
        async with db.begin():
            expired = await notification_feed.dismiss_expired(db, now)
            deleted = await notification_feed.purge_dismissed(db, cutoff)

    summary = {"expired_dismissed": expired, "deleted": deleted}
    logger.info("Notification cleanup: expired=%d deleted=%d (cutoff=%s)", expired, deleted, cutoff.date())
    await _emit_summary("notification_cleanup", summary)
    return summary


async def _motivate(customer_id: int, facts_provider: FactProvider, now: datetime) -> bool:
    facts = await facts_provider.snapshot(customer_id)
    inactive_since = now - timedelta(days=settings.eligibility.inactivity_days)
    if facts.last_activity_at is not None and facts.last_activity_at >= inactive_since:
        return False

    async with async_session_factory() as db:
        async with db.begin():
            if await notification_feed.has_recent(
                db, customer_id, NotificationType.MOTIVATION.value, now - timedelta(hours=24)
            ):
                return False

            rows = await state_store.list_for_customer(db, customer_id)
            pending = [r for r in rows if not r.is_eligible]
            closest = max(pending, key=lambda r: r.progress_percentage, default=None)

            kwargs: dict[str, Any] = {"target_type": None, "target_code": None, "progress": None}
            if closest is not None:
                kwargs = {
                    "target_type": TargetType(closest.target_type),
                    "target_code": closest.target_code,
                    "progress": closest.progress_percentage,
                }
            db.add(build_motivation(customer_id, now=now, **kwargs))
    return True


async def send_motivation_notifications(
    directory: CustomerDirectory | None = None,
    facts_provider: FactProvider | None = None,
) -> dict[str, int]:
    """One MOTIVATION per inactive customer per day, pointing at their closest target."""
    directory = directory or core_banking_client
    facts_provider = facts_provider or fact_provider
    now = datetime.now(UTC)
    summary: dict[str, int] = {"checked": 0, "sent": 0, "failed": 0}

    cursor: int | None = None
    while True:
        page = await directory.list_active_customers(after=cursor, limit=settings.eligibility.batch_chunk_size)
        for customer_id in page.customer_ids:
            summary["checked"] += 1
            try:
                if await _motivate(customer_id, facts_provider, now):
                    summary["sent"] += 1
            except Exception:
                logger.exception("Motivation notification failed for customer %s", customer_id)
                summary["failed"] += 1
        if not page.customer_ids or page.next_cursor is None:
            break
        cursor = page.next_cursor

    logger.info("Motivation notifications: checked=%d sent=%d", summary["checked"], summary["sent"])
    await _emit_summary("motivation_notifications", summary)
    return summary
