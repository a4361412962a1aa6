from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from loan_engine.models.loan import Loan
from loan_engine.schemas.loan import LoanEvent, LoanState
from loan_engine.services.loan_errors import EventNotAllowed, InvalidState, RuleViolation
from loan_engine.services.loan_rules import (
    Rule,
    add_investment_rule,
    approve_rule,
    disburse_funds_rule,
    submission_rule,
)

# current state -> event -> rule deciding the next state
TRANSITIONS: Mapping[LoanState, Mapping[LoanEvent, Rule]] = MappingProxyType(
    {
        LoanState.INITIAL: MappingProxyType({LoanEvent.SUBMISSION: submission_rule}),
        LoanState.PROPOSED: MappingProxyType({LoanEvent.APPROVE: approve_rule}),
        LoanState.APPROVED: MappingProxyType({LoanEvent.ADD_INVESTMENT: add_investment_rule}),
        LoanState.INVESTED: MappingProxyType({LoanEvent.DISBURSE_FUNDS: disburse_funds_rule}),
        LoanState.DISBURSED: MappingProxyType({}),
    }
)


class LoanStateMachine:
    """Single-operation state machine for one loan.

    Build one per workflow invocation, seeded with the loan's persisted
    state. Not thread-safe and not meant to be shared or reused.
    """

    def __init__(
        self,
        initial_state: LoanState | str,
        transitions: Mapping[LoanState, Mapping[LoanEvent, Rule]] = TRANSITIONS,
    ) -> None:
        self._current_state = initial_state
        self._transitions = transitions

    @property
    def current_state(self) -> LoanState | str:
        return self._current_state

    def allowed_events(self) -> list[LoanEvent]:
        try:
            state = LoanState(self._current_state)
        except ValueError:
            return []
        return list(self._transitions.get(state, {}))

    def transition(self, loan: Loan, event: LoanEvent) -> None:
        try:
            state = LoanState(self._current_state)
        except ValueError:
            state = None
        allowed = self._transitions.get(state) if state is not None else None
        if allowed is None:
            raise InvalidState(
                f"invalid current state: {self._current_state}",
                details={"state": str(self._current_state)},
            )

        event_name = getattr(event, "value", event)
        try:
            event = LoanEvent(event)
        except ValueError:
            event = None
        rule = allowed.get(event) if event is not None else None
        if rule is None:
            raise EventNotAllowed(
                f"event {event_name} not allowed in state {state.value}",
                details={"state": state.value, "event": event_name},
            )

        next_state, error = rule(loan)
        if error is not None:
            raise RuleViolation(
                f"state decision failed: {error}",
                details={"state": state.value, "event": event.value, "reason": error},
            )

        self._current_state = next_state
        loan.state = next_state.value
