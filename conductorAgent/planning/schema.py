"""Plan schema shared by the plan generator and the executor."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class PlanStep(BaseModel):
    """Single unit of work in a plan."""

    id: str = Field(min_length=1, description="Step identifier like step_1, step_2")
    type: Literal["tool", "think"] = Field(description="'tool' requires a module, 'think' is pure computation")
    module: Optional[str] = Field(
        default=None,
        description="Module reference like 'google:gmail', required for tool steps",
    )
    description: str = Field(default="", description="What this step accomplishes")
    depends_on: List[str] = Field(default_factory=list, description="Step ids whose results this step needs")

    @field_validator("depends_on", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("module", mode="before")
    @classmethod
    def _blank_module(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PlanModel(BaseModel):
    """Structured plan with ordered steps."""

    steps: List[PlanStep]


class StepOutcome(BaseModel):
    """Terminal state of one step."""

    id: str
    status: Literal["complete", "error"]
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def complete(cls, step_id: str, result: Any) -> "StepOutcome":
        return cls(id=step_id, status="complete", result=result)

    @classmethod
    def failed(cls, step_id: str, error: str) -> "StepOutcome":
        return cls(id=step_id, status="error", error=error or "Unknown error")

    def to_dict(self) -> Dict[str, Any]:
        if self.status == "complete":
            return {"id": self.id, "status": self.status, "result": self.result}
        return {"id": self.id, "status": self.status, "error": self.error}


def summarize(outcomes: List[StepOutcome]) -> str:
    total = len(outcomes)
    completed = sum(1 for outcome in outcomes if outcome.status == "complete")
    if completed == total:
        return f"All {total} step(s) completed successfully."
    return f"{completed}/{total} step(s) completed."


class PlanResult(BaseModel):
    """Outcome of a full plan run."""

    steps: List[StepOutcome]
    summary: str

    @classmethod
    def from_outcomes(cls, outcomes: List[StepOutcome]) -> "PlanResult":
        return cls(steps=list(outcomes), summary=summarize(outcomes))

    def outcome(self, step_id: str) -> Optional[StepOutcome]:
        return next((item for item in self.steps if item.id == step_id), None)

    @property
    def completed(self) -> int:
        return sum(1 for item in self.steps if item.status == "complete")

    def to_dict(self) -> Dict[str, Any]:
        return {"steps": [item.to_dict() for item in self.steps], "summary": self.summary}
