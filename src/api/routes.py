"""Eligibility HTTP API — evaluate, status and the notification feed.

Thin FastAPI layer over src.eligibility.engine and src.notifications.feed.
Authentication is handled upstream by the back-office gateway.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.engine import get_session
from src.eligibility.engine import eligibility_engine
from src.eligibility.errors import ActivationFailedError, FactLookupError, UnknownTargetError
from src.models.enums import TargetType, TriggerEvent
from src.models.notification import Notification
from src.notifications.feed import notification_feed
from src.schemas.eligibility import EligibilityOverview, EligibilityResult
from src.schemas.notifications import NotificationFeedResponse, NotificationView
from src.security.rate_limiter import rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/eligibility", tags=["eligibility"])


class EvaluateRequest(BaseModel):
    """Body of POST /customers/{id}/evaluate. Omitted target fields mean "all"."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    target_type: TargetType | None = None
    target_code: str | None = None
    trigger_event: TriggerEvent = TriggerEvent.MANUAL
    require_activation: bool = False


# ── Evaluation ───────────────────────────────────────────────────────


@router.post("/customers/{customer_id}/evaluate", response_model=list[EligibilityResult])
async def evaluate(customer_id: int, body: EvaluateRequest | None = None) -> list[EligibilityResult]:
    """Run the engine for one customer; customer-initiated calls are rate limited."""
    body = body or EvaluateRequest()

    if body.trigger_event == TriggerEvent.CUSTOMER_REQUEST:
        allowed, retry_after = await rate_limiter.check_customer_evaluation(customer_id)
        if not allowed:
            raise HTTPException(
                status_code=429,
                detail="Too many evaluation requests",
                headers={"Retry-After": str(retry_after)},
            )

    try:
        return await eligibility_engine.evaluate(
            customer_id,
            target_type=body.target_type,
            target_code=body.target_code,
            trigger_event=body.trigger_event,
            require_activation=body.require_activation,
        )
    except UnknownTargetError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except FactLookupError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ActivationFailedError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.get("/customers/{customer_id}/status", response_model=EligibilityOverview)
async def status(customer_id: int) -> EligibilityOverview:
    """Stored eligibility of every evaluated target plus the dashboard summary."""
    return await eligibility_engine.get_status(customer_id)


# ── Notification feed ────────────────────────────────────────────────


@router.get("/customers/{customer_id}/notifications", response_model=NotificationFeedResponse)
async def list_notifications(
    customer_id: int,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> NotificationFeedResponse:
    notifications = await notification_feed.list_active(db, customer_id, datetime.now(UTC), limit=limit)
    counts = Counter(n.notification_type for n in notifications)
    return NotificationFeedResponse(
        notifications=[NotificationView.model_validate(n) for n in notifications],
        counts=dict(counts),
    )


def _or_404(notification: Notification | None) -> NotificationView:
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationView.model_validate(notification)


@router.post("/customers/{customer_id}/notifications/{notification_id}/dismiss", response_model=NotificationView)
async def dismiss_notification(
    customer_id: int,
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
) -> NotificationView:
    return _or_404(await notification_feed.dismiss(db, customer_id, notification_id, datetime.now(UTC)))


@router.post("/customers/{customer_id}/notifications/{notification_id}/read", response_model=NotificationView)
async def mark_notification_read(
    customer_id: int,
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
) -> NotificationView:
    return _or_404(await notification_feed.mark_read(db, customer_id, notification_id, datetime.now(UTC)))


@router.post("/customers/{customer_id}/notifications/{notification_id}/action", response_model=NotificationView)
async def record_notification_action(
    customer_id: int,
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
) -> NotificationView:
    return _or_404(await notification_feed.record_action(db, customer_id, notification_id, datetime.now(UTC)))
