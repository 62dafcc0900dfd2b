"""Repository interfaces and their SQLAlchemy implementations."""

from nomina_engine.repositories.protocols import (
    AuditEntry,
    AuditSink,
    ConfigurationRepository,
    EmployeeRepository,
    NovedadRepository,
    PayrollRecordRepository,
    PeriodRepository,
)
from nomina_engine.repositories.sql import (
    SqlAuditSink,
    SqlConfigurationRepository,
    SqlEmployeeRepository,
    SqlNovedadRepository,
    SqlPayrollRecordRepository,
    SqlPeriodRepository,
)

__all__ = [
    "AuditEntry",
    "AuditSink",
    "ConfigurationRepository",
    "EmployeeRepository",
    "NovedadRepository",
    "PayrollRecordRepository",
    "PeriodRepository",
    "SqlAuditSink",
    "SqlConfigurationRepository",
    "SqlEmployeeRepository",
    "SqlNovedadRepository",
    "SqlPayrollRecordRepository",
    "SqlPeriodRepository",
]
