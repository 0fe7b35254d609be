"""Pydantic schemas for the core-banking internal API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ActivationResponse(BaseModel):
    """Body returned by POST /activations."""

    activated: bool
    reference: str | None = None   # account number or credit-line id
    message: str | None = None


class CustomerPage(BaseModel):
    """One page of active customer ids, keyset-paginated on id."""

    customer_ids: list[int] = Field(default_factory=list)
    next_cursor: int | None = None
