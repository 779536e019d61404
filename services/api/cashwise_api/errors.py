"""Typed failures raised by the scoring engine.

Components absorb ``ConflictError`` themselves; everything else reaches the
caller (and the HTTP layer maps it to a status code in ``main.py``).
"""

from __future__ import annotations


class ScoringError(Exception):
    code = "scoring_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(ScoringError):
    code = "invalid_input"


class NotFound(ScoringError):
    code = "not_found"


class ConflictError(ScoringError):
    """A uniqueness constraint was hit by a concurrent or repeated writer."""

    code = "conflict"


class PreconditionNotMet(ScoringError):
    code = "precondition_not_met"


class StoreUnavailableError(ScoringError):
    """Transient backend failure that outlived the store's retries."""

    code = "store_unavailable"


class InvariantViolation(ScoringError):
    code = "invariant_violation"
