"""Plan graph nodes and per-step dispatch."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig

from conductorAgent.agent.stream import ErrorEvent, StreamSource, TextDelta, ToolCallEvent, ToolResultEvent
from conductorAgent.capabilities.registry import CapabilityRegistry
from conductorAgent.tools.gateway import ToolGateway
from conductorAgent.tools.toolset import build_module_toolset
from conductorAgent.utils.callbacks import emit
from conductorAgent.utils.error_handler import ConfigurationError, describe_exception
from conductorAgent.utils.logging_utils import log_step_execution
from conductorAgent.utils.message_utils import content_text, truncate
from conductorAgent.utils.prompt_builder import PromptBuilder

from .schema import PlanStep, StepOutcome
from .state import PlanState

LOGGER = logging.getLogger(__name__)

UNRESOLVABLE_DEPENDENCY = "Unresolvable dependency"


@dataclass
class PlanHooks:
    """Observers for plan progress; each may be sync or async."""

    on_step: Optional[Callable[[str, str, str], Any]] = None
    on_tool_call: Optional[Callable[[str, str, Dict[str, Any]], Any]] = None
    on_tool_result: Optional[Callable[[str, str, Any], Any]] = None


@dataclass
class ExecutionContext:
    """Per-run collaborators passed to nodes through the graph config."""

    gateway: ToolGateway
    hooks: PlanHooks


def _context(config: RunnableConfig) -> ExecutionContext:
    return config["configurable"]["execution"]


def dependency_context(step: PlanStep, results: Mapping[str, Any], max_chars: int) -> str:
    """Results of the step's successful dependencies, each truncated, as prompt text."""
    parts = []
    for dep_id in step.depends_on:
        if dep_id not in results:
            continue
        text = json.dumps(results[dep_id], indent=2, ensure_ascii=False, default=str)
        parts.append(f"[Result from {dep_id}]:\n{truncate(text, max_chars)}")
    return "\n\n" + "\n\n".join(parts) if parts else ""


class StepRunner:
    """Dispatches one step by type.

    Think steps are a single tool-less model call. Tool steps resolve their module
    to a bounded capability set and run a short tool-augmented stream.
    """

    def __init__(
        self,
        model: BaseChatModel,
        registry: CapabilityRegistry,
        stream_source: StreamSource,
        *,
        max_iterations: int = 3,
        context_max_chars: int = 4000,
    ) -> None:
        self.model = model
        self.registry = registry
        self.stream_source = stream_source
        self.max_iterations = max_iterations
        self.context_max_chars = context_max_chars

    def build_prompt(self, step: PlanStep, request: str, results: Mapping[str, Any]) -> str:
        context = dependency_context(step, results, self.context_max_chars)
        return f"Original request: {request}\n\nTask: {step.description}{context}"

    async def run(self, step: PlanStep, request: str, results: Mapping[str, Any], execution: ExecutionContext) -> Any:
        if step.type == "think":
            return await self.run_think(step, request, results)
        return await self.run_tool(step, request, results, execution)

    async def run_think(self, step: PlanStep, request: str, results: Mapping[str, Any]) -> str:
        response = await self.model.ainvoke(
            [
                SystemMessage(content=PromptBuilder.load_step_think_prompt()),
                HumanMessage(content=self.build_prompt(step, request, results)),
            ]
        )
        return content_text(response.content)

    async def run_tool(self, step: PlanStep, request: str, results: Mapping[str, Any], execution: ExecutionContext) -> Any:
        if not step.module:
            raise ConfigurationError(f"Tool step {step.id} is missing a module reference")

        toolset = build_module_toolset(self.registry, execution.gateway, step.module)
        if toolset is None:
            raise ConfigurationError(f'Module "{step.module}" not found or has no available tools')

        text: List[str] = []
        outputs: List[Any] = []
        async for event in self.stream_source.stream(
            PromptBuilder.load_step_tool_prompt(toolset.prompts),
            [HumanMessage(content=self.build_prompt(step, request, results))],
            toolset.capabilities,
            max_iterations=self.max_iterations,
        ):
            if isinstance(event, TextDelta):
                text.append(event.text)
            elif isinstance(event, ToolCallEvent):
                await emit(execution.hooks.on_tool_call, event.call_id, event.name, event.arguments)
            elif isinstance(event, ToolResultEvent):
                outputs.append(event.result)
                await emit(execution.hooks.on_tool_result, event.call_id, event.name, event.result)
            elif isinstance(event, ErrorEvent):
                LOGGER.error(f"Step {step.id} stream error: {event.message}")

        if outputs:
            return outputs[0] if len(outputs) == 1 else outputs
        return "".join(text)


def build_schedule_node(dependency_policy: str = "best_effort"):
    """Pick the ready wave; under fail_fast, first fail steps whose dependency failed."""

    async def schedule(state: PlanState, config: RunnableConfig) -> Dict[str, Any]:
        steps = state["steps"]
        remaining = list(state.get("remaining", []))
        executed = list(state.get("executed", []))
        failed = list(state.get("failed", []))
        outcomes: List[StepOutcome] = []

        if dependency_policy == "fail_fast":
            hooks = _context(config).hooks
            changed = True
            while changed:
                changed = False
                for step in steps:
                    if step.id not in remaining:
                        continue
                    failed_dep = next((dep for dep in step.depends_on if dep in failed), None)
                    if failed_dep is None:
                        continue
                    message = f"Skipped: dependency '{failed_dep}' failed"
                    outcomes.append(StepOutcome.failed(step.id, message))
                    remaining.remove(step.id)
                    executed.append(step.id)
                    failed.append(step.id)
                    log_step_execution(LOGGER, step, "error", message)
                    await emit(hooks.on_step, step.id, step.description, "error")
                    changed = True

        done = set(executed)
        ready = [
            step.id
            for step in steps
            if step.id in remaining and all(dep in done for dep in step.depends_on)
        ]
        return {
            "remaining": remaining,
            "executed": executed,
            "failed": failed,
            "ready": ready,
            "outcomes": outcomes,
        }

    return schedule


def build_run_wave_node(runner: StepRunner, parallel: bool = False):
    """Run every ready step; failures are recorded, never raised."""

    async def run_step(step: PlanStep, request: str, results: Mapping[str, Any], execution: ExecutionContext) -> StepOutcome:
        await emit(execution.hooks.on_step, step.id, step.description, "running")
        log_step_execution(LOGGER, step, "running")
        try:
            result = await runner.run(step, request, results, execution)
        except Exception as e:
            message = describe_exception(e)
            LOGGER.error(f"Step {step.id} failed: {message}")
            await emit(execution.hooks.on_step, step.id, step.description, "error")
            return StepOutcome.failed(step.id, message)

        log_step_execution(LOGGER, step, "complete")
        await emit(execution.hooks.on_step, step.id, step.description, "complete")
        return StepOutcome.complete(step.id, result)

    async def run_wave(state: PlanState, config: RunnableConfig) -> Dict[str, Any]:
        execution = _context(config)
        by_id = {step.id: step for step in state["steps"]}
        wave = [by_id[step_id] for step_id in state["ready"]]
        results = dict(state.get("results", {}))
        snapshot = dict(results)

        if parallel and len(wave) > 1:
            outcomes = list(await asyncio.gather(*(run_step(step, state["request"], snapshot, execution) for step in wave)))
        else:
            outcomes = []
            for step in wave:
                outcomes.append(await run_step(step, state["request"], snapshot, execution))

        failed = list(state.get("failed", []))
        for outcome in outcomes:
            if outcome.status == "complete":
                results[outcome.id] = outcome.result
            else:
                failed.append(outcome.id)

        wave_ids = set(state["ready"])
        return {
            "remaining": [step_id for step_id in state["remaining"] if step_id not in wave_ids],
            "executed": list(state.get("executed", [])) + [step.id for step in wave],
            "failed": failed,
            "ready": [],
            "results": results,
            "outcomes": outcomes,
        }

    return run_wave


def build_fail_stuck_node():
    """Mark every remaining step failed; the graph has a cycle or an unknown dependency."""

    async def fail_stuck(state: PlanState, config: RunnableConfig) -> Dict[str, Any]:
        hooks = _context(config).hooks
        remaining = set(state.get("remaining", []))
        known = {step.id for step in state["steps"]}
        outcomes: List[StepOutcome] = []
        for step in state["steps"]:
            if step.id not in remaining:
                continue
            waiting = [dep for dep in step.depends_on if dep in remaining or dep not in known]
            detail = f" (waiting on: {', '.join(waiting)})" if waiting else ""
            message = f"{UNRESOLVABLE_DEPENDENCY}{detail}"
            outcomes.append(StepOutcome.failed(step.id, message))
            log_step_execution(LOGGER, step, "error", message)
            await emit(hooks.on_step, step.id, step.description, "error")
        return {
            "remaining": [],
            "executed": list(state.get("executed", [])) + [outcome.id for outcome in outcomes],
            "ready": [],
            "outcomes": outcomes,
        }

    return fail_stuck
