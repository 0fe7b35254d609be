"""Fact providers — where point-in-time customer facts come from.

The engine only depends on the FactProvider protocol. The default provider
reads the snapshot from the core-banking facts endpoint; tests pass a stub.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from src.eligibility.errors import FactLookupError
from src.integrations.core_banking.client import CoreBankingClient, core_banking_client
from src.schemas.eligibility import FactSnapshot

logger = logging.getLogger(__name__)


class FactProvider(Protocol):
    """Anything that can produce a FactSnapshot for a customer."""

    async def snapshot(self, customer_id: int) -> FactSnapshot: ...


class CoreBankingFactProvider:
    """FactProvider backed by the core-banking HTTP API."""

    def __init__(self, client: CoreBankingClient | None = None) -> None:
        self._client = client or core_banking_client

    async def snapshot(self, customer_id: int) -> FactSnapshot:
        """Fetch the snapshot, translating transport failures to FactLookupError."""
        try:
            return await self._client.fetch_facts(customer_id)
        except (httpx.HTTPError, ValidationError, ValueError) as exc:
            logger.warning("Fact snapshot unavailable for customer %s: %s", customer_id, exc)
            raise FactLookupError(f"facts unavailable for customer {customer_id}") from exc


# Module-level singleton
fact_provider = CoreBankingFactProvider()
