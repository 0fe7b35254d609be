"""Condition catalog — read-only access to the configured condition specs."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.condition import ConditionSpec
from src.models.enums import TargetType

logger = logging.getLogger(__name__)


class ConditionCatalog:
    """Loads the active condition set of a target, in display order."""

    async def active_conditions(
        self,
        db: AsyncSession,
        target_type: TargetType,
        target_code: str,
    ) -> list[ConditionSpec]:
        stmt = (
            select(ConditionSpec)
            .where(
                ConditionSpec.target_type == target_type.value,
                ConditionSpec.target_code == target_code,
                ConditionSpec.is_active.is_(True),
            )
            .order_by(ConditionSpec.display_order, ConditionSpec.condition_key)
        )
        result = await db.execute(stmt)
        specs = list(result.scalars().all())
        if not specs:
            logger.warning("No active conditions for %s:%s", target_type.value, target_code)
        return specs


# Module-level singleton
condition_catalog = ConditionCatalog()
