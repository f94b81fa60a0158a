"""Exception hierarchy for the audit engine."""

from __future__ import annotations


class AuditError(Exception):
    """Base class for all audit engine errors."""


class IllegalRunTransitionError(AuditError):
    """Raised when attempting an illegal audit run state transition."""

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Illegal transition: {from_status} → {to_status}. "
            f"See LEGAL_RUN_TRANSITIONS for valid transitions."
        )


class RescoreError(AuditError):
    """Raised by a scoring oracle when a submission cannot be re-scored."""


class OracleCircuitOpenError(RescoreError):
    """Raised when the oracle circuit breaker is open and rejecting requests."""


class ScoreParseError(RescoreError):
    """Raised when an oracle reply does not contain a usable 0-100 score."""


class PersistenceError(AuditError):
    """Raised when the audit store fails to read or write."""
