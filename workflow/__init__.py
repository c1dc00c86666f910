"""Workflow package: orchestrator, cycle graph, state, conditions, and automation."""

from workflow.orchestrator import ExpansionOrchestrator
from workflow.graph import GenerationCycle
from workflow.state import SessionState, CycleState
from workflow.conditions import (
    route_after_prompt,
    route_after_draft,
    route_after_critique,
    route_after_commit,
)
from workflow.automation import (
    AutoPilot,
    BatchRunner,
    BatchResult,
    pick_autopilot_choice,
    pick_kickoff_choice,
)
from workflow.autosave import DebouncedAutosave
from workflow.callbacks import SessionCallback, LoggingCallback, RichStreamCallback

__all__ = [
    "ExpansionOrchestrator",
    "GenerationCycle",
    "SessionState",
    "CycleState",
    "route_after_prompt",
    "route_after_draft",
    "route_after_critique",
    "route_after_commit",
    "AutoPilot",
    "BatchRunner",
    "BatchResult",
    "pick_autopilot_choice",
    "pick_kickoff_choice",
    "DebouncedAutosave",
    "SessionCallback",
    "LoggingCallback",
    "RichStreamCallback",
]
