"""Runtime assembly: providers, registry, gateway, planner, executor and turn loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage

from conductorAgent.agent.stream import LangChainStreamSource
from conductorAgent.agent.turn_loop import TurnCallbacks, TurnLoop, TurnResult
from conductorAgent.agent.usage import CostLookup, PriceTableCostLookup
from conductorAgent.capabilities.config_store import ConfigStore, YamlConfigStore
from conductorAgent.capabilities.loader import ProviderLoader
from conductorAgent.capabilities.registry import CapabilityRegistry
from conductorAgent.config.project_root import resolve_project_path
from conductorAgent.config.settings import Settings, get_settings
from conductorAgent.hitl.approval import ApprovalGate
from conductorAgent.planning.executor import PlanExecutor
from conductorAgent.planning.nodes import PlanHooks
from conductorAgent.planning.planner import LLMPlanGenerator, PlanGenerator
from conductorAgent.tools.gateway import ToolGateway
from conductorAgent.tools.toolset import (
    Capability,
    build_direct_capabilities,
    build_plan_capability,
    build_search_capabilities,
)
from conductorAgent.utils.logging_utils import log_prompt
from conductorAgent.utils.prompt_builder import PromptBuilder

from .model_resolver import build_chat_model

LOGGER = logging.getLogger(__name__)


@dataclass
class TurnToolset:
    """Capabilities and prompt material offered for one turn."""

    capabilities: List[Capability] = field(default_factory=list)
    prompts: List[str] = field(default_factory=list)
    catalog: str = ""


class ConductorRuntime:
    """Owns the shared registry and wires per-turn capability sets."""

    def __init__(
        self,
        settings: Settings,
        *,
        loader: ProviderLoader,
        config_store: ConfigStore,
        registry: CapabilityRegistry,
        gateway: ToolGateway,
        turn_loop: TurnLoop,
        planner: Optional[PlanGenerator] = None,
        executor: Optional[PlanExecutor] = None,
    ) -> None:
        self.settings = settings
        self.loader = loader
        self.config_store = config_store
        self.registry = registry
        self.gateway = gateway
        self.turn_loop = turn_loop
        self.planner = planner
        self.executor = executor

    @property
    def has_model(self) -> bool:
        return self.turn_loop.stream_source is not None

    def refresh_capabilities(self) -> int:
        """Rescan provider directories and rebuild the registry; returns the routed function count."""
        if self.loader.directories:
            self.loader.load_all()
        return len(self.registry.rebuild().entries)

    async def run_plan(self, request: str, gateway: ToolGateway, hooks: Optional[PlanHooks] = None) -> Dict[str, Any]:
        """Generate a plan for the request and execute it against the current catalog."""
        if self.planner is None or self.executor is None:
            return {"error": "No active model configured"}
        catalog = self.registry.format_module_catalog()
        steps = await self.planner(request, catalog)
        result = await self.executor.execute(steps, request, gateway, hooks)
        return result.to_dict()

    def build_toolset(self, gateway: ToolGateway, hooks: Optional[PlanHooks] = None) -> TurnToolset:
        """Direct capabilities, plus plan_actions and search when routed modules exist."""
        direct = build_direct_capabilities(self.loader.providers(), self.config_store, gateway)
        toolset = TurnToolset(capabilities=list(direct.capabilities), prompts=list(direct.prompts))

        catalog = self.registry.format_module_catalog()
        if catalog and self.planner is not None and self.executor is not None:
            toolset.catalog = catalog

            async def _run_plan(request: str) -> Dict[str, Any]:
                return await self.run_plan(request, gateway, hooks)

            toolset.capabilities.append(build_plan_capability(catalog, _run_plan))
            if self.settings.governance.expose_tool_search:
                toolset.capabilities.extend(build_search_capabilities(self.registry, gateway))
        return toolset

    def system_prompt(self, toolset: TurnToolset) -> str:
        return PromptBuilder.load_assistant_prompt(
            catalog=toolset.catalog,
            provider_prompts=toolset.prompts,
            tool_search=self.settings.governance.expose_tool_search,
            persona_path=self.settings.persona_path,
        )

    async def chat_turn(
        self,
        history: Sequence[BaseMessage],
        user_text: str,
        *,
        callbacks: Optional[TurnCallbacks] = None,
        approval_gate: Optional[ApprovalGate] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TurnResult:
        callbacks = callbacks or TurnCallbacks()
        gateway = self.gateway.with_gate(approval_gate)
        hooks = PlanHooks(
            on_step=callbacks.on_plan_step,
            on_tool_call=callbacks.on_tool_call,
            on_tool_result=callbacks.on_tool_result,
        )
        toolset = self.build_toolset(gateway, hooks)
        system_prompt = self.system_prompt(toolset)
        log_prompt(LOGGER, "turn", system_prompt, self.settings.observability.log_prompt_max_length)
        return await self.turn_loop.run(
            history,
            user_text,
            system_prompt=system_prompt,
            capabilities=toolset.capabilities,
            callbacks=callbacks,
            cancel_event=cancel_event,
        )


def build_application(
    settings: Optional[Settings] = None,
    *,
    chat_model: Optional[BaseChatModel] = None,
    planner_model: Optional[BaseChatModel] = None,
    planner: Optional[PlanGenerator] = None,
    config_store: Optional[ConfigStore] = None,
    loader: Optional[ProviderLoader] = None,
    cost_lookup: Optional[CostLookup] = None,
) -> ConductorRuntime:
    """Assemble a runtime from settings, with injectable collaborators.

    Without an injected ``chat_model`` the model comes from settings; when no chat
    model id is configured the runtime still builds, and every turn reports the
    missing model through ``on_error``.
    """
    settings = settings or get_settings()
    governance = settings.governance

    if loader is None:
        directories = [resolve_project_path(d) for d in settings.capabilities.provider_directories()]
        loader = ProviderLoader(directories)
    if config_store is None:
        config_store = YamlConfigStore(resolve_project_path(settings.capabilities.config_path))

    if chat_model is None:
        chat_model = build_chat_model(settings.models, "chat")
        if chat_model is not None and planner_model is None:
            planner_model = build_chat_model(settings.models, "planner")
    planner_model = planner_model or chat_model

    registry = CapabilityRegistry(loader.providers, config_store)
    gateway = ToolGateway(
        registry,
        timeout_seconds=governance.tool_timeout_seconds,
        approval_timeout_seconds=governance.approval_timeout_seconds,
    )

    stream_source = None
    executor = None
    if chat_model is not None:
        stream_source = LangChainStreamSource(chat_model, max_iterations=governance.turn_max_iterations)
        executor = PlanExecutor(chat_model, registry, settings=governance)
        if planner is None and planner_model is not None:
            planner = LLMPlanGenerator(planner_model)
        LOGGER.info(f"Chat model: {stream_source.model_id}")
    else:
        LOGGER.warning("No chat model configured")

    turn_loop = TurnLoop(
        stream_source,
        cost_lookup=cost_lookup or PriceTableCostLookup(),
        cost_lookup_timeout=governance.cost_lookup_timeout_seconds,
        max_iterations=governance.turn_max_iterations,
    )

    runtime = ConductorRuntime(
        settings,
        loader=loader,
        config_store=config_store,
        registry=registry,
        gateway=gateway,
        turn_loop=turn_loop,
        planner=planner,
        executor=executor,
    )
    runtime.refresh_capabilities()
    return runtime
