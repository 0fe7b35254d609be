"""Async httpx client for the core-banking internal API.

The eligibility engine consumes three collaborators from core banking:
- fact snapshots:      GET  {base_url}/customers/{id}/eligibility-facts
- target activation:   POST {base_url}/activations
- active customers:    GET  {base_url}/customers/active?after=&limit=

Auth: X-Api-Key header.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.config import settings
from src.eligibility.errors import ActivationError
from src.integrations.core_banking.schemas import ActivationResponse, CustomerPage
from src.models.enums import TargetType
from src.observability.events import emit
from src.schemas.eligibility import FactSnapshot
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class CoreBankingClient:
    """Thin async wrapper around the core-banking endpoints used by the engine."""

    def __init__(self) -> None:
        self._base_url = settings.integrations.core_banking_api_url.rstrip("/")
        self._api_key = settings.integrations.core_banking_api_key
        self._timeout = httpx.Timeout(
            settings.integrations.http_timeout,
            connect=settings.integrations.http_connect_timeout,
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"X-Api-Key": self._api_key} if self._api_key else {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.request(
                method,
                f"{self._base_url}{path}",
                headers=self._headers,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()

    async def fetch_facts(self, customer_id: int) -> FactSnapshot:
        """Fetch the point-in-time fact snapshot for one customer.

        Transport and decoding errors propagate: without a snapshot the target cannot be
        evaluated at all, and the caller decides how to isolate the failure.
        """
        payload = await self._request("GET", f"/customers/{customer_id}/eligibility-facts")
        if not isinstance(payload, dict):
            raise ValueError(f"facts payload for customer {customer_id} is not an object")
        payload.setdefault("customer_id", customer_id)
        return FactSnapshot.model_validate(payload)

    async def activate(self, customer_id: int, target_type: TargetType, target_code: str) -> ActivationResponse:
        """Ask core banking to open the account / enable the service.

        Raises:
            ActivationError: on timeout, HTTP error, an unparseable response, or an explicit refusal.
        """
        await emit(SystemEvent(
            event_type=EventType.EXTERNAL_API_CALL,
            customer_id=customer_id,
            data={"integration": "core_banking", "operation": "activate", "target_code": target_code},
            source_module="integrations.core_banking.client",
        ))

        try:
            payload = await self._request(
                "POST",
                "/activations",
                json={
                    "customerId": customer_id,
                    "targetType": target_type.value,
                    "targetCode": target_code,
                },
            )
            result = ActivationResponse.model_validate(payload)
        except httpx.TimeoutException as exc:
            logger.warning("Activation timeout: customer=%s target=%s", customer_id, target_code)
            raise ActivationError("timeout") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Activation HTTP %s: customer=%s target=%s",
                exc.response.status_code,
                customer_id,
                target_code,
            )
            raise ActivationError(f"http_{exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Activation transport error: customer=%s target=%s: %s", customer_id, target_code, exc)
            raise ActivationError("transport_error") from exc
        except ValueError as exc:
            # Non-JSON body, or JSON without `activated` (ValidationError is a ValueError)
            logger.warning("Activation invalid response: customer=%s target=%s: %s", customer_id, target_code, exc)
            raise ActivationError("invalid_response") from exc

        if not result.activated:
            raise ActivationError(result.message or "refused")

        await emit(SystemEvent(
            event_type=EventType.EXTERNAL_API_RESPONSE,
            customer_id=customer_id,
            data={"integration": "core_banking", "operation": "activate", "reference": result.reference},
            source_module="integrations.core_banking.client",
        ))
        return result

    async def list_active_customers(self, after: int | None, limit: int) -> CustomerPage:
        """One page of active customer ids strictly greater than `after`."""
        params: dict[str, int] = {"limit": limit}
        if after is not None:
            params["after"] = after
        payload = await self._request("GET", "/customers/active", params=params)
        return CustomerPage.model_validate(payload)


# Module-level singleton
core_banking_client = CoreBankingClient()
