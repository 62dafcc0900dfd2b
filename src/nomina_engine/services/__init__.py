"""Payroll services: configuration, novedades, liquidation and period lifecycle."""

from nomina_engine.services.adjustments import AdjustmentResult, ClosedPeriodAdjustmentService
from nomina_engine.services.backfill import (
    BackfillAnalysis,
    BackfillResult,
    PolicyBackfillService,
)
from nomina_engine.services.configuration_store import ConfigurationStore
from nomina_engine.services.liquidation import LiquidationOrchestrator, LiquidationResult
from nomina_engine.services.locks import CompanyLockRegistry, get_lock_registry
from nomina_engine.services.novedad_service import NovedadService
from nomina_engine.services.period_lifecycle import PeriodLifecycleManager
from nomina_engine.services.state_machine import PeriodStateMachine

__all__ = [
    "AdjustmentResult",
    "BackfillAnalysis",
    "BackfillResult",
    "ClosedPeriodAdjustmentService",
    "CompanyLockRegistry",
    "ConfigurationStore",
    "LiquidationOrchestrator",
    "LiquidationResult",
    "NovedadService",
    "PeriodLifecycleManager",
    "PeriodStateMachine",
    "PolicyBackfillService",
    "get_lock_registry",
]
