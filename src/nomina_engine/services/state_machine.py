"""Payroll period state machine with transition validation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from nomina_engine.calculators.types import PeriodState
from nomina_engine.errors import InvalidTransitionError

if TYPE_CHECKING:
    from nomina_engine.models import PayrollPeriod, PayrollRecord


class PeriodStateMachine:
    """State machine for payroll period transitions.

    Allowed transitions:
    - draft → closed
    - draft → cancelled
    - closed → reopened
    - reopened → closed
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodState.DRAFT: [PeriodState.CLOSED, PeriodState.CANCELLED],
        PeriodState.CLOSED: [PeriodState.REOPENED],
        PeriodState.REOPENED: [PeriodState.CLOSED],
        PeriodState.CANCELLED: [],  # Terminal state
    }

    # States where novedades and records can be written
    EDITABLE = {PeriodState.DRAFT, PeriodState.REOPENED}

    @classmethod
    def can_transition(cls, from_state: str, to_state: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_state, [])
        return to_state in allowed

    @classmethod
    def validate_transition(cls, from_state: str, to_state: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_state, to_state):
            raise InvalidTransitionError(from_state, to_state)

    @classmethod
    def is_editable(cls, state: str) -> bool:
        """Draft and reopened periods accept novedades and liquidation."""
        return state in cls.EDITABLE

    @classmethod
    def is_open(cls, state: str) -> bool:
        return cls.is_editable(state)

    @classmethod
    def is_reopen(cls, from_state: str, to_state: str) -> bool:
        return from_state == PeriodState.CLOSED and to_state == PeriodState.REOPENED

    @classmethod
    def get_next_states(cls, current_state: str) -> list[str]:
        return cls.VALID_TRANSITIONS.get(current_state, [])

    @classmethod
    def validate_period_for_transition(
        cls,
        period: PayrollPeriod,
        to_state: str,
        records: Sequence[PayrollRecord] = (),
        require_vouchers: bool = False,
    ) -> list[str]:
        """Validate a period for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_state = period.state

        if not cls.can_transition(from_state, to_state):
            errors.append(f"Cannot transition from '{from_state}' to '{to_state}'")
            return errors

        if to_state == PeriodState.CLOSED:
            if not records:
                errors.append("Period has no employee records")

            error_records = [r for r in records if r.has_errors]
            if error_records:
                errors.append(f"{len(error_records)} employee record(s) have validation errors")

            if require_vouchers:
                missing = [r for r in records if not r.voucher_id]
                if missing:
                    errors.append(f"{len(missing)} employee record(s) are missing vouchers")

        elif to_state == PeriodState.REOPENED:
            if period.reported_at is not None:
                errors.append("Period was already reported to the tax authority")

        return errors
