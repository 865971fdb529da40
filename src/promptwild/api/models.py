"""Pydantic request models for the promptwild API.

FastAPI uses these for request validation and OpenAPI generation.

Models
------
ExpandRequest
    Payload for ``POST /api/expand``.
CheckRequest
    Payload for ``POST /api/expand/check``.
ResetCountersRequest
    Payload for ``POST /api/fragments/counters/reset``.
FragmentCreateRequest
    Payload for ``POST /api/fragments``.
FragmentImportRequest
    Payload for ``POST /api/fragments/import``.
FragmentUpdateRequest
    Payload for ``PATCH /api/fragments/{id}``.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints

# Surrounding whitespace is dropped before the length check.
FragmentName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class ExpandRequest(BaseModel):
    """Request body for ``POST /api/expand``.

    Attributes:
        prompt: Prompt text containing choice points.
        count: Number of expansions to produce (1–100). Expansions run one
            after another, so sequential references advance per result.
    """

    prompt: str = Field(
        ...,
        description="Prompt text containing wildcard choice points.",
    )
    count: int = Field(
        default=1,
        ge=1,
        le=100,
        description="Number of expansions (1–100).",
    )


class CheckRequest(BaseModel):
    """Request body for ``POST /api/expand/check``."""

    prompt: str = Field(..., description="Prompt text to inspect.")


class ResetCountersRequest(BaseModel):
    """Request body for ``POST /api/fragments/counters/reset``.

    Attributes:
        path: Fragment path whose cursor to reset. ``None`` resets all.
    """

    path: str | None = Field(
        default=None,
        description="Fragment path to reset, or null to reset every counter.",
    )


class FragmentCreateRequest(BaseModel):
    """Request body for ``POST /api/fragments``."""

    name: FragmentName = Field(..., description="Fragment name used in references.")
    folder: str = Field(default="", description="Folder path, empty for the root.")
    content: list[str] = Field(default_factory=list, description="Fragment lines.")


class FragmentImportRequest(BaseModel):
    """Request body for ``POST /api/fragments/import``.

    The text is split into lines; blank lines and ``#`` comments are dropped.
    """

    name: FragmentName = Field(..., description="Fragment name used in references.")
    text: str = Field(..., description="Raw text, one option per line.")
    folder: str = Field(default="", description="Folder path, empty for the root.")


class FragmentUpdateRequest(BaseModel):
    """Request body for ``PATCH /api/fragments/{id}``. Omitted fields are kept."""

    name: FragmentName | None = None
    folder: str | None = None
    content: list[str] | None = None
