"""Capability sets offered to a model.

A ``Capability`` is what a model can call: a name, a description, a pydantic
argument model and an async runner. Runners route through ``ToolGateway`` so the
approval and timeout contract applies uniformly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field, ValidationError

from conductorAgent.capabilities.config_store import ConfigStore
from conductorAgent.capabilities.manifest import FunctionSpec, LoadedProvider
from conductorAgent.capabilities.params import build_args_model
from conductorAgent.capabilities.registry import (
    DEFAULT_SEARCH_LIMIT,
    CapabilityRegistry,
    composite_name,
    parse_module_ref,
    provider_is_available,
    resolve_settings,
)
from conductorAgent.tools.gateway import ToolGateway, error_result
from conductorAgent.utils.error_handler import describe_exception
from conductorAgent.utils.prompt_builder import PromptBuilder

LOGGER = logging.getLogger(__name__)

CapabilityRunner = Callable[[Dict[str, Any], Optional[str]], Awaitable[Any]]

PLAN_CAPABILITY_NAME = "plan_actions"
FIND_TOOLS_NAME = "find_tools"
USE_TOOL_NAME = "use_tool"


@dataclass
class Capability:
    """A callable unit offered to the model."""

    name: str
    description: str
    args_schema: Type[BaseModel]
    runner: CapabilityRunner
    provider_id: Optional[str] = None

    async def run(self, arguments: Optional[Dict[str, Any]] = None, call_id: Optional[str] = None) -> Any:
        try:
            validated = self.args_schema.model_validate(arguments or {})
        except ValidationError as e:
            LOGGER.info(f"Invalid arguments for {self.name}: {e}")
            return error_result(f"Invalid arguments for {self.name}: {e}")
        return await self.runner(validated.model_dump(exclude_unset=True), call_id)

    def as_tool(self) -> StructuredTool:
        """LangChain tool used for binding; execution goes through ``run``."""

        async def _invoke(**kwargs: Any) -> Any:
            return await self.run(kwargs)

        return StructuredTool.from_function(
            coroutine=_invoke,
            name=self.name,
            description=self.description or self.name,
            args_schema=self.args_schema,
        )


@dataclass
class ModuleToolset:
    """Capabilities reachable through one module reference, plus provider prompt snippets."""

    module_ref: str
    capabilities: List[Capability] = field(default_factory=list)
    prompts: List[str] = field(default_factory=list)


def function_capability(name: str, spec: FunctionSpec, runner: CapabilityRunner, provider_id: Optional[str] = None) -> Capability:
    return Capability(
        name=name,
        description=spec.description,
        args_schema=build_args_model(f"{name}_args", spec.params),
        runner=runner,
        provider_id=provider_id,
    )


def registry_capability(registry: CapabilityRegistry, gateway: ToolGateway, full_name: str) -> Optional[Capability]:
    """Capability for a live registry function, invoked by composite name."""
    spec = registry.function_spec(full_name)
    if spec is None:
        return None
    entry = registry.snapshot.by_name[full_name]

    async def _run(arguments: Dict[str, Any], call_id: Optional[str]) -> Any:
        return await gateway.invoke(full_name, arguments, call_id)

    return function_capability(full_name, spec, _run, provider_id=entry.provider_id)


def build_module_toolset(registry: CapabilityRegistry, gateway: ToolGateway, module_ref: str) -> Optional[ModuleToolset]:
    """Resolve a module reference to its capabilities; None when nothing resolves."""
    names = registry.module_functions(module_ref)
    if not names:
        return None

    capabilities = [cap for cap in (registry_capability(registry, gateway, name) for name in names) if cap]
    if not capabilities:
        return None

    prompts: List[str] = []
    parsed = parse_module_ref(module_ref)
    if parsed:
        prompt = registry.provider_prompt(parsed[0])
        if prompt:
            prompts.append(prompt)
    return ModuleToolset(module_ref=module_ref, capabilities=capabilities, prompts=prompts)


def build_direct_capabilities(
    providers: Mapping[str, LoadedProvider],
    config_store: ConfigStore,
    gateway: ToolGateway,
) -> ModuleToolset:
    """Functions of direct providers, offered to the model without routing."""
    toolset = ModuleToolset(module_ref="direct")

    for provider_id, loaded in providers.items():
        manifest = loaded.manifest
        if not manifest.direct:
            continue
        if not provider_is_available(manifest, resolve_settings(manifest, config_store)):
            continue

        for spec in manifest.functions:
            handler = loaded.handlers.get(spec.name)
            if handler is None:
                continue
            name = composite_name(provider_id, spec.name)

            async def _run(arguments: Dict[str, Any], call_id: Optional[str], _loaded=loaded, _name=name, _handler=handler) -> Any:
                try:
                    settings = resolve_settings(_loaded.manifest, config_store)
                except Exception as e:
                    LOGGER.error(f"Reading settings for {_name} failed: {type(e).__name__}: {e}")
                    return error_result(f'Tool "{_name}" is not available: {describe_exception(e)}')
                if not provider_is_available(_loaded.manifest, settings):
                    return error_result(f'Tool "{_name}" is not available')
                return await gateway.execute(
                    _name,
                    _handler,
                    settings.config,
                    arguments,
                    auto_allow=settings.allow_without_asking,
                    call_id=call_id,
                )

            toolset.capabilities.append(function_capability(name, spec, _run, provider_id=provider_id))
        if loaded.prompt:
            toolset.prompts.append(loaded.prompt)

    return toolset


class FindToolsArgs(BaseModel):
    query: str = Field(..., description="Keywords describing the action you need, e.g. 'turn on light'")
    category: Optional[str] = Field(default=None, description="Optional category filter")
    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1, le=25, description="Maximum number of results")


class UseToolArgs(BaseModel):
    name: str = Field(..., description="Exact tool name returned by find_tools")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Arguments for the tool")


def build_search_capabilities(registry: CapabilityRegistry, gateway: ToolGateway) -> List[Capability]:
    """``find_tools`` searches the registry, ``use_tool`` invokes a surfaced name."""

    async def _find(arguments: Dict[str, Any], call_id: Optional[str]) -> Any:
        hits = registry.search(
            arguments["query"],
            category=arguments.get("category"),
            limit=arguments.get("limit", DEFAULT_SEARCH_LIMIT),
        )
        return [
            {"name": hit.name, "description": hit.description, "params": list(hit.params), "category": hit.category}
            for hit in hits
        ]

    async def _use(arguments: Dict[str, Any], call_id: Optional[str]) -> Any:
        capability = registry_capability(registry, gateway, arguments["name"])
        if capability is None:
            return error_result(f'Tool "{arguments["name"]}" is not available. Use find_tools to search.')
        return await capability.run(arguments.get("arguments") or {}, call_id)

    categories = ", ".join(name for name, _ in registry.categories())
    find_description = "Search the extended tool catalog by keywords. Returns tool names with their parameters."
    if categories:
        find_description += f" Categories: {categories}."

    return [
        Capability(name=FIND_TOOLS_NAME, description=find_description, args_schema=FindToolsArgs, runner=_find),
        Capability(
            name=USE_TOOL_NAME,
            description="Invoke a tool returned by find_tools with its arguments.",
            args_schema=UseToolArgs,
            runner=_use,
        ),
    ]


class PlanActionsArgs(BaseModel):
    request: str = Field(
        ...,
        description="The user's COMPLETE request in their own words. Pass it faithfully, without adding details the user did not say.",
    )


def build_plan_capability(catalog_text: str, run_plan: Callable[[str], Awaitable[Dict[str, Any]]]) -> Capability:
    """The ``plan_actions`` meta capability; its description embeds the module catalog."""

    async def _run(arguments: Dict[str, Any], call_id: Optional[str]) -> Any:
        request = arguments["request"]
        try:
            return await run_plan(request)
        except Exception as e:
            LOGGER.error(f"plan_actions failed: {type(e).__name__}: {e}")
            return error_result(describe_exception(e))

    return Capability(
        name=PLAN_CAPABILITY_NAME,
        description=PromptBuilder.load_plan_actions_description(catalog_text),
        args_schema=PlanActionsArgs,
        runner=_run,
    )
