"""Typed models for reference resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

FailureKind = Literal["invalid_notation", "not_found", "duplicate", "empty_extract"]


@dataclass(slots=True, frozen=True)
class GatheredSection:
    """One resolved reference with its extracted content and owning file."""

    reference: str
    prefix: str
    path: str
    source_file: str
    content: str


@dataclass(slots=True, frozen=True)
class ResolutionFailure:
    """Why a single reference could not be resolved."""

    kind: FailureKind
    reference: str
    message: str
    referred_by: str | None = None
    files: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ResolutionError(Exception):
    """Raised by strict resolution when any reference fails."""

    failure: ResolutionFailure

    def __str__(self) -> str:
        return self.failure.message
