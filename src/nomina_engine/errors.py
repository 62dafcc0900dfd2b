"""Error taxonomy for the payroll engine.

Every error carries a machine readable ``code`` and the structured fields a
caller needs to build a response, so services can raise them and callers can
turn them into results without parsing messages.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class NominaError(Exception):
    """Base class for all payroll engine errors."""

    code = "nomina_error"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for callers."""
        return {
            "code": self.code,
            "message": self.message,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class ValidationError(NominaError, ValueError):
    """Malformed or out-of-range input."""

    code = "validation_error"

    def __init__(self, errors: list[str] | str, **details: Any):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors), errors=self.errors, **details)


class NotFoundError(NominaError, LookupError):
    """Referenced entity does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: UUID | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


class PeriodNotEditable(NominaError):
    """Write attempted against a period that does not accept changes."""

    code = "period_not_editable"

    def __init__(self, period_id: UUID, state: str, reason: str | None = None):
        self.period_id = period_id
        self.state = state
        self.reason = reason
        msg = f"Period {period_id} is not editable (state '{state}')"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, period_id=period_id, state=state, reason=reason)


class InvariantViolation(NominaError):
    """Operation would break a period invariant.

    ``violations`` holds every broken rule found, not only the first one.
    """

    code = "invariant_violation"

    def __init__(self, operation: str, violations: list[str]):
        self.operation = operation
        self.violations = list(violations)
        super().__init__(
            f"Cannot {operation} period: {'; '.join(self.violations)}",
            operation=operation,
            violations=self.violations,
        )


class InvalidTransitionError(NominaError):
    """Raised when an invalid state transition is attempted."""

    code = "invalid_transition"

    def __init__(
        self,
        from_state: str,
        to_state: str,
        reason: str | None = None,
        errors: list[str] | None = None,
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        self.errors = errors or ([reason] if reason else [])
        msg = f"Invalid transition from '{from_state}' to '{to_state}'"
        if reason:
            msg += f": {reason}"
        super().__init__(
            msg, from_state=str(from_state), to_state=str(to_state), errors=self.errors
        )


class NoActivePeriodAvailable(NominaError):
    """Compensatory adjustment requested but no open or future period exists."""

    code = "no_active_period"

    def __init__(self, company_id: UUID):
        self.company_id = company_id
        super().__init__(
            f"Company {company_id} has no open or future period to receive the adjustment",
            company_id=company_id,
        )


class CalculationFallback(NominaError):
    """Primary calculation path failed and the local implementation was used.

    Attached to results and logged; never raised to callers.
    """

    code = "calculation_fallback"

    def __init__(self, component: str, cause: BaseException | str):
        self.component = component
        self.cause = str(cause)
        super().__init__(
            f"{component}: primary path unavailable, local calculation used ({self.cause})",
            component=component,
            cause=self.cause,
        )


class PersistenceFailure(NominaError):
    """A repository write failed."""

    code = "persistence_failure"

    def __init__(self, operation: str, cause: BaseException | str | None = None):
        self.operation = operation
        self.cause = str(cause) if cause is not None else None
        msg = f"Persistence failure during {operation}"
        if self.cause:
            msg += f": {self.cause}"
        super().__init__(msg, operation=operation, cause=self.cause)


class ConcurrentModificationError(PersistenceFailure):
    """Optimistic version check on a period row failed."""

    code = "concurrent_modification"

    def __init__(self, period_id: UUID, expected_version: int):
        self.period_id = period_id
        self.expected_version = expected_version
        super().__init__(
            "period transition",
            f"period {period_id} changed since version {expected_version}",
        )


class AdjustmentAuditFailure(NominaError):
    """Audit record for an adjustment could not be written.

    The paired novedad write is rolled back before this is raised.
    """

    code = "adjustment_audit_failure"

    def __init__(self, period_id: UUID, cause: BaseException | str):
        self.period_id = period_id
        self.cause = str(cause)
        super().__init__(
            f"Audit record for adjustment in period {period_id} could not be persisted: {self.cause}",
            period_id=period_id,
            cause=self.cause,
        )
