"""Agents package: all AI agent classes."""

from agents.base_agent import BaseAgent
from agents.planner_agent import PlannerAgent
from agents.writer_agent import WriterAgent
from agents.editor_agent import EditorAgent, REFINEMENT_OPTIONS
from agents.continuity_agent import ContinuityAgent

__all__ = [
    "BaseAgent",
    "PlannerAgent",
    "WriterAgent",
    "EditorAgent",
    "REFINEMENT_OPTIONS",
    "ContinuityAgent",
]
