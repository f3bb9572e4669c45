"""Command pipeline for the GHLOps assistant.

This package exposes the orchestrator as a service-style interface while
keeping planning, dispatch and synthesis in separate modules.
"""

from .dispatcher import ToolDispatcher
from .llm import ReasoningEngine
from .orchestrator import CommandOrchestrator, build_orchestrator
from .planner import CommandPlanner, Plan
from .synthesizer import Report, ResponseSynthesizer

__all__ = [
    "CommandOrchestrator",
    "CommandPlanner",
    "Plan",
    "ReasoningEngine",
    "Report",
    "ResponseSynthesizer",
    "ToolDispatcher",
    "build_orchestrator",
]
