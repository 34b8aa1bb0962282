"""State carried through the plan execution graph."""

from __future__ import annotations

import operator
from typing import Annotated, Any, Dict, List, TypedDict

from .schema import PlanStep, StepOutcome


class PlanState(TypedDict, total=False):
    """Wave-loop bookkeeping.

    ``remaining`` holds step ids not yet attempted, ``executed`` the ids that reached
    a terminal state (success or error), ``failed`` the subset that errored and
    ``ready`` the wave chosen by the last scheduling pass. ``results`` maps
    successful step ids to their results; ``outcomes`` accumulates in completion order.
    """

    request: str
    steps: List[PlanStep]
    remaining: List[str]
    executed: List[str]
    failed: List[str]
    ready: List[str]
    results: Dict[str, Any]
    outcomes: Annotated[List[StepOutcome], operator.add]
