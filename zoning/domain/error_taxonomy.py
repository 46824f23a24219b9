from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

from zoning.domain.errors import DomainDependencyError, DomainInvariantError, DomainValidationError

# Canonical error vocabulary for submissions and retry attempts.
ErrorCode = Literal[
    "NO_VALID_ITEMS",
    "PROCESSING_FAILED",
    "classification_unavailable",
    "record_invariant_violated",
    "internal_error",
]

# Error kinds surfaced to the submitting caller.
ErrorType = Literal["validation", "api", "network", "unknown"]

CANONICAL_ERROR_CODES: tuple[ErrorCode, ...] = (
    "NO_VALID_ITEMS",
    "PROCESSING_FAILED",
    "classification_unavailable",
    "record_invariant_violated",
    "internal_error",
)

ERROR_TYPES: Mapping[ErrorCode, ErrorType] = {
    "NO_VALID_ITEMS": "validation",
    "PROCESSING_FAILED": "unknown",
    "classification_unavailable": "network",
    "record_invariant_violated": "unknown",
    "internal_error": "unknown",
}


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def error_type_for(code: str) -> ErrorType:
    if not is_canonical_error_code(code):
        return "unknown"
    return ERROR_TYPES[code]  # type: ignore[index]


def resolve_attempt_error(exc: BaseException) -> ErrorCode:
    """Map an exception raised during a retry attempt onto the canonical vocabulary."""
    if isinstance(exc, DomainDependencyError):
        return "classification_unavailable"
    if isinstance(exc, (DomainInvariantError, DomainValidationError)):
        return "record_invariant_violated"
    # Store drivers and anything unexpected land here.
    return "internal_error"
