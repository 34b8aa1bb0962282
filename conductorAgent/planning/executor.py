"""Plan executor: a LangGraph wave loop over dependency-ordered steps.

    START → schedule ─┬─ run_wave → schedule ...
                      ├─ fail_stuck → END
                      └─ END

Each pass of ``schedule`` picks the steps whose dependencies have all reached a
terminal state. A stuck graph (cycle or unknown dependency id) fails every
remaining step, so execution finishes in at most one wave per step.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langgraph.graph import END, START, StateGraph

from conductorAgent.agent.stream import LangChainStreamSource, StreamSource
from conductorAgent.capabilities.registry import CapabilityRegistry
from conductorAgent.config.settings import GovernanceSettings
from conductorAgent.tools.gateway import ToolGateway
from conductorAgent.utils.callbacks import emit

from .nodes import (
    ExecutionContext,
    PlanHooks,
    StepRunner,
    build_fail_stuck_node,
    build_run_wave_node,
    build_schedule_node,
)
from .routing import schedule_route
from .schema import PlanResult, PlanStep, StepOutcome
from .state import PlanState

LOGGER = logging.getLogger(__name__)

DUPLICATE_STEP_ID = "Duplicate step id"


def build_plan_graph(runner: StepRunner, *, dependency_policy: str = "best_effort", parallel: bool = False):
    """Compose and compile the wave-loop graph."""
    graph = StateGraph(PlanState)

    graph.add_node("schedule", build_schedule_node(dependency_policy))
    graph.add_node("run_wave", build_run_wave_node(runner, parallel=parallel))
    graph.add_node("fail_stuck", build_fail_stuck_node())

    graph.add_edge(START, "schedule")
    graph.add_conditional_edges(
        "schedule",
        schedule_route,
        {
            "run_wave": "run_wave",
            "fail_stuck": "fail_stuck",
            END: END,
        },
    )
    graph.add_edge("run_wave", "schedule")
    graph.add_edge("fail_stuck", END)

    return graph.compile()


class PlanExecutor:
    """Runs a list of ``PlanStep``s to a ``PlanResult``; step failures never raise."""

    def __init__(
        self,
        model: BaseChatModel,
        registry: CapabilityRegistry,
        *,
        settings: Optional[GovernanceSettings] = None,
        stream_source: Optional[StreamSource] = None,
    ) -> None:
        self.settings = settings or GovernanceSettings()
        source = stream_source or LangChainStreamSource(model, max_iterations=self.settings.step_max_iterations)
        self.runner = StepRunner(
            model,
            registry,
            source,
            max_iterations=self.settings.step_max_iterations,
            context_max_chars=self.settings.dependency_context_max_chars,
        )
        self.graph = build_plan_graph(
            self.runner,
            dependency_policy=self.settings.dependency_policy,
            parallel=self.settings.parallel_waves,
        )

    async def execute(
        self,
        steps: Sequence[PlanStep],
        request: str,
        gateway: ToolGateway,
        hooks: Optional[PlanHooks] = None,
    ) -> PlanResult:
        hooks = hooks or PlanHooks()
        unique: List[PlanStep] = []
        seen = set()
        duplicates: List[StepOutcome] = []
        for step in steps:
            if step.id in seen:
                LOGGER.warning(f"Plan contains duplicate step id {step.id}; later occurrence skipped")
                duplicates.append(StepOutcome.failed(step.id, DUPLICATE_STEP_ID))
                await emit(hooks.on_step, step.id, step.description, "error")
                continue
            seen.add(step.id)
            unique.append(step)

        initial: Dict[str, Any] = {
            "request": request,
            "steps": unique,
            "remaining": [step.id for step in unique],
            "executed": [],
            "failed": [],
            "ready": [],
            "results": {},
            "outcomes": duplicates,
        }
        config = {
            "configurable": {"execution": ExecutionContext(gateway=gateway, hooks=hooks)},
            "recursion_limit": 2 * len(unique) + 5,
        }

        final_state = await self.graph.ainvoke(initial, config=config)
        result = PlanResult.from_outcomes(final_state.get("outcomes", []))
        LOGGER.info(f"Plan finished: {result.summary}")
        return result
