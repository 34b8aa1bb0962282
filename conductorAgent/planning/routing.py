"""Conditional routing for the plan execution graph."""

from __future__ import annotations

import logging
from typing import Literal

from langgraph.graph import END

from .state import PlanState

LOGGER = logging.getLogger(__name__)


def schedule_route(state: PlanState) -> Literal["run_wave", "fail_stuck", "__end__"]:
    """After scheduling: run the ready wave, fail a stuck graph, or finish.

    Returns:
        "run_wave": at least one remaining step has all dependencies terminal
        "fail_stuck": steps remain but none can run (cycle or unknown dependency)
        END: nothing remains
    """
    if not state.get("remaining"):
        return END
    if state.get("ready"):
        return "run_wave"
    LOGGER.warning(f"Plan is stuck with {len(state['remaining'])} unresolvable step(s)")
    return "fail_stuck"
