from __future__ import annotations

from typing import Any


class LoanWorkflowError(Exception):
    """Base error for every failure a loan workflow operation can surface."""

    code = "loan_workflow_error"
    status_code = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class LoanNotFound(LoanWorkflowError):
    code = "loan_not_found"
    status_code = 404


class ValidationFailed(LoanWorkflowError):
    code = "validation_failed"
    status_code = 400


class RuleViolation(ValidationFailed):
    """A transition rule rejected the loan; carries the rule's message."""


class InvalidState(LoanWorkflowError):
    code = "invalid_state"
    status_code = 409


class EventNotAllowed(LoanWorkflowError):
    code = "event_not_allowed"
    status_code = 409


class ConcurrentModification(LoanWorkflowError):
    code = "concurrent_update"
    status_code = 409


class PersistenceFailure(LoanWorkflowError):
    code = "persistence_failure"
    status_code = 503


class SideEffectFailure(LoanWorkflowError):
    code = "side_effect_failure"
    status_code = 500
