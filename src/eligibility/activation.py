"""Activation trigger — opens the account / enables the service on eligibility.

Activation is only attempted on a false→true transition (and by the
reconciliation sweep for rows whose first attempt failed). The collaborator
is called first; `mark_activated` runs only after it succeeded, so a failed
call leaves the row eligible-but-not-activated for the next sweep.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.eligibility.errors import ActivationError, ActivationFailedError
from src.eligibility.state import EligibilityStateStore, StateChange, state_store
from src.integrations.core_banking.client import core_banking_client
from src.models.eligibility_status import EligibilityStatus
from src.models.enums import TargetType, Transition
from src.observability.events import emit
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class Activator(Protocol):
    """Collaborator that performs the activation in core banking."""

    async def activate(self, customer_id: int, target_type: TargetType, target_code: str) -> Any: ...


class ActivationTrigger:
    """Calls the activator at most once per successful eligibility gain."""

    def __init__(
        self,
        activator: Activator | None = None,
        store: EligibilityStateStore | None = None,
    ) -> None:
        self._activator = activator or core_banking_client
        self._store = store or state_store

    async def on_transition(
        self,
        db: AsyncSession,
        change: StateChange,
        now: datetime,
        require_activation: bool = False,
    ) -> bool:
        """React to an evaluation. Only BECAME_ELIGIBLE leads to an activation."""
        if change.transition != Transition.BECAME_ELIGIBLE:
            return False
        return await self.activate(db, change.status, now, require_activation=require_activation)

    async def activate(
        self,
        db: AsyncSession,
        status: EligibilityStatus,
        now: datetime,
        require_activation: bool = False,
    ) -> bool:
        """Activate one eligible row. Returns True if this call activated it.

        Raises:
            ActivationFailedError: collaborator failed and require_activation is set.
        """
        if status.is_activated or not status.is_eligible or not status.auto_activate_when_eligible:
            return False

        target_type = TargetType(status.target_type)
        try:
            await self._activator.activate(status.customer_id, target_type, status.target_code)
        except ActivationError as exc:
            logger.warning(
                "Activation deferred: customer=%s target=%s:%s reason=%s",
                status.customer_id,
                status.target_type,
                status.target_code,
                exc,
            )
            await emit(SystemEvent(
                event_type=EventType.ACTIVATION_FAILED,
                customer_id=status.customer_id,
                actor_id="system",
                actor_role="system",
                data={"target_type": status.target_type, "target_code": status.target_code, "reason": str(exc)},
                source_module="eligibility.activation",
            ))
            if require_activation:
                raise ActivationFailedError(status.customer_id, status.target_code, str(exc)) from exc
            return False

        won = await self._store.mark_activated(db, status, now)
        if won:
            logger.info(
                "Activated %s:%s for customer %s",
                status.target_type,
                status.target_code,
                status.customer_id,
            )
            await emit(SystemEvent(
                event_type=EventType.TARGET_ACTIVATED,
                customer_id=status.customer_id,
                actor_id="system",
                actor_role="system",
                data={"target_type": status.target_type, "target_code": status.target_code},
                source_module="eligibility.activation",
            ))
        return won


# Module-level singleton
activation_trigger = ActivationTrigger()
