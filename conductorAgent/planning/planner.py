"""Plan generation with a structured-output model call."""

from __future__ import annotations

import logging
from typing import List, Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from conductorAgent.planning.schema import PlanModel, PlanStep
from conductorAgent.utils.error_handler import PlanValidationError
from conductorAgent.utils.logging_utils import log_plan_created
from conductorAgent.utils.prompt_builder import PromptBuilder

LOGGER = logging.getLogger(__name__)


class PlanGenerator(Protocol):
    async def __call__(self, request: str, catalog_text: str) -> List[PlanStep]:
        ...


class LLMPlanGenerator:
    """Asks the planner model for a ``PlanModel`` given the request and module catalog."""

    def __init__(self, model: BaseChatModel) -> None:
        self.model = model
        self._structured = model.with_structured_output(PlanModel)

    async def __call__(self, request: str, catalog_text: str) -> List[PlanStep]:
        LOGGER.debug(f"Generating plan for request: {request[:200]}")
        messages = [
            SystemMessage(content=PromptBuilder.load_planner_prompt()),
            HumanMessage(content=f"Available modules:\n{catalog_text}\n\nUser request: {request}"),
        ]
        plan = await self._structured.ainvoke(messages)
        if isinstance(plan, dict):
            plan = PlanModel.model_validate(plan)
        if not isinstance(plan, PlanModel):
            raise PlanValidationError(f"Planner returned an unexpected value: {type(plan).__name__}")
        if not plan.steps:
            raise PlanValidationError("Planner returned an empty plan")

        log_plan_created(LOGGER, request, plan.steps)
        return list(plan.steps)
