#!/usr/bin/env python3
"""Typed errors for the changelog engine.

Every raised error carries a short ``code`` so callers can map it to a
friendly message without parsing text. Record types (``ParseAnomaly``,
``ValidationFailure``) are never raised; they are collected into reports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class ChangelogEngineError(Exception):
    """Base class for raised engine errors."""

    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.code = code


class ProviderError(ChangelogEngineError):
    """Upstream VCS or import-source failure (network, auth, rate limit, 5xx)."""

    RETRYABLE_CODES = ("RATE_LIMIT", "SERVER", "NETWORK", "TIMEOUT")

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None) -> None:
        super().__init__(message, code=code or code_for_status(status_code))
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.code in self.RETRYABLE_CODES


class EnrichmentError(ChangelogEngineError):
    """Text-generation collaborator failed or timed out."""


class StoreUnavailableError(ChangelogEngineError):
    """Persistence collaborator cannot be reached at all."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="STORE_UNAVAILABLE")


class EntryStoreError(ChangelogEngineError):
    """A single persistence call failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="STORE_WRITE")


class EntryNotFoundError(ChangelogEngineError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Entry {entry_id} not found", code="ENTRY_NOT_FOUND")
        self.entry_id = entry_id


class BatchAbortError(ChangelogEngineError):
    """Whole reconciliation batch aborted; entries persisted before the abort stay."""

    def __init__(self, message: str, imported_so_far: int = 0) -> None:
        super().__init__(message, code="BATCH_ABORT")
        self.imported_so_far = imported_so_far


class InvalidTransitionError(ChangelogEngineError):
    def __init__(self, current: str, attempted: str) -> None:
        super().__init__(f"Cannot move import session from '{current}' to '{attempted}'", code="INVALID_TRANSITION")
        self.current = current
        self.attempted = attempted


@dataclass(frozen=True)
class ParseAnomaly:
    """A malformed record that was recovered with a default."""

    source: str
    detail: str


@dataclass(frozen=True)
class ValidationFailure:
    kind: str
    message: str
    field: Optional[str] = None
    severity: str = "error"


def code_for_status(status_code: Optional[int]) -> str:
    if status_code is None:
        return "NETWORK"
    if status_code in (401, 403):
        return "UNAUTHORIZED"
    if status_code == 404:
        return "NOT_FOUND"
    if status_code == 429:
        return "RATE_LIMIT"
    if status_code >= 500:
        return "SERVER"
    return "UNKNOWN"


def friendly_message_from_code(code: str, *, fallback: str) -> str:
    mapping = {
        "TIMEOUT": "Timeout while fetching data. Please retry or increase HTTP_TIMEOUT_S.",
        "NOT_FOUND": "Repository or ref not found. Please check the repository URL and refs.",
        "UNAUTHORIZED": "Access denied. Please check your access token and its scopes.",
        "RATE_LIMIT": "Rate limit exceeded. Please wait a few minutes and retry.",
        "NETWORK": "Network error while contacting the provider. Please retry.",
        "STORE_UNAVAILABLE": "Entry store is unavailable; the import batch was aborted.",
    }
    return mapping.get(code, fallback)
