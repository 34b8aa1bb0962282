"""Plan-then-execute: plan schema, plan generation and the dependency-ordered executor."""

from .executor import PlanExecutor, PlanHooks
from .planner import LLMPlanGenerator, PlanGenerator
from .schema import PlanModel, PlanResult, PlanStep, StepOutcome, summarize

__all__ = [
    "LLMPlanGenerator",
    "PlanExecutor",
    "PlanGenerator",
    "PlanHooks",
    "PlanModel",
    "PlanResult",
    "PlanStep",
    "StepOutcome",
    "summarize",
]
