"""SQLAlchemy ORM models for the payroll engine."""

from nomina_engine.models.base import Base, TimestampMixin
from nomina_engine.models.company import Company, CompanyPayrollPolicy, Employee
from nomina_engine.models.payroll import (
    AuditEvent,
    Novedad,
    PayrollPeriod,
    PayrollRecord,
    YearlyConfigurationRecord,
)

__all__ = [
    "AuditEvent",
    "Base",
    "Company",
    "CompanyPayrollPolicy",
    "Employee",
    "Novedad",
    "PayrollPeriod",
    "PayrollRecord",
    "TimestampMixin",
    "YearlyConfigurationRecord",
]
