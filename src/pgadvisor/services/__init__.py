"""Probes, recommendation engine and reconciliation workflow."""

from pgadvisor.services.engine_probe import PostgresProbe
from pgadvisor.services.log_analyzer import LogAnalyzerAdvisor
from pgadvisor.services.recommendation import (
    ConfigDocument,
    RecommendationEngine,
    render_document,
)
from pgadvisor.services.reconcile import (
    ReconciliationOutcome,
    ReconciliationResult,
    ReconciliationWorkflow,
)
from pgadvisor.services.system_facts import (
    DiskMedium,
    SystemSnapshot,
    collect_snapshot,
    select_system_facts,
)

__all__ = [
    "PostgresProbe",
    "LogAnalyzerAdvisor",
    "ConfigDocument",
    "RecommendationEngine",
    "render_document",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "ReconciliationWorkflow",
    "DiskMedium",
    "SystemSnapshot",
    "collect_snapshot",
    "select_system_facts",
]
