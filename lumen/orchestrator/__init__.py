"""Turn orchestration pipeline."""

from lumen.orchestrator.models import TurnRequest, TurnState
from lumen.orchestrator.turn import TurnOrchestrator

__all__ = ["TurnOrchestrator", "TurnRequest", "TurnState"]
