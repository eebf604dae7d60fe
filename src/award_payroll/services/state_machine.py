"""Pay period state machine with transition validation."""

from __future__ import annotations

from award_payroll.calculators.errors import InvalidTransitionError
from award_payroll.calculators.types import PayPeriod, PayPeriodStatus


class PayPeriodStateMachine:
    """State machine for pay period status transitions.

    Allowed transitions:
    - open → processing
    - processing → open (reopen)
    - processing → paid
    - paid → verified
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[PayPeriodStatus, list[PayPeriodStatus]] = {
        PayPeriodStatus.OPEN: [PayPeriodStatus.PROCESSING],
        PayPeriodStatus.PROCESSING: [PayPeriodStatus.OPEN, PayPeriodStatus.PAID],
        PayPeriodStatus.PAID: [PayPeriodStatus.VERIFIED],
        PayPeriodStatus.VERIFIED: [],  # Terminal state
    }

    # Statuses where recalculation is allowed
    CALCULATION_ALLOWED = {
        PayPeriodStatus.OPEN,
        PayPeriodStatus.PROCESSING,
    }

    # Statuses where results are immutable
    RESULTS_IMMUTABLE = {
        PayPeriodStatus.PAID,
        PayPeriodStatus.VERIFIED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(PayPeriodStatus(from_status), [])
        return PayPeriodStatus(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(
                PayPeriodStatus(from_status).value, PayPeriodStatus(to_status).value
            )

    @classmethod
    def can_calculate(cls, status: str) -> bool:
        """Check if recalculation is allowed in this status."""
        return PayPeriodStatus(status) in cls.CALCULATION_ALLOWED

    @classmethod
    def are_results_immutable(cls, status: str) -> bool:
        return PayPeriodStatus(status) in cls.RESULTS_IMMUTABLE

    @classmethod
    def is_reopen(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a reopen (processing → open)."""
        return (
            PayPeriodStatus(from_status) == PayPeriodStatus.PROCESSING
            and PayPeriodStatus(to_status) == PayPeriodStatus.OPEN
        )

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[PayPeriodStatus]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(PayPeriodStatus(current_status), [])

    @classmethod
    def validate_period_for_transition(cls, period: PayPeriod, to_status: str) -> list[str]:
        """Validate a pay period for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = period.status

        if not cls.can_transition(from_status, to_status):
            allowed = ", ".join(s.value for s in cls.get_next_statuses(from_status)) or "none"
            errors.append(
                f"Cannot transition from '{from_status.value}' to '{PayPeriodStatus(to_status).value}'"
                f" (allowed: {allowed})"
            )
            return errors

        to_status = PayPeriodStatus(to_status)
        if to_status == PayPeriodStatus.PROCESSING:
            if period.totals.gross_pay == 0 and period.totals.total_hours == 0:
                errors.append("Pay period has no calculated pay")

        elif to_status == PayPeriodStatus.VERIFIED:
            if period.actual_pay is None:
                errors.append("Actual pay must be recorded before verification")

        return errors
