"""Pydantic models shared across services."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ErrorInfo(BaseModel):
    """Failure of one item in a bulk operation.

    ``index`` refers to the position of the item in the caller's input.
    """

    model_config = ConfigDict(frozen=True)

    index: Annotated[int, Field(ge=0)]
    reason: str


class BulkResult(BaseModel):
    """Success and failure counts of a partially-failing bulk operation."""

    model_config = ConfigDict(frozen=True)

    success_count: Annotated[int, Field(ge=0)] = 0
    failure_count: Annotated[int, Field(ge=0)] = 0
    errors: list[ErrorInfo] = Field(default_factory=list)
