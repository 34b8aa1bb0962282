"""Parameter descriptions for provider functions.

Manifests describe parameters with a JSON-Schema-shaped object. It is parsed once
into ``ParamSpec`` values over a closed set of kinds, which then feed both the
human-readable summary used by search and a pydantic model used to validate
and bind the function as a tool.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, create_model

SUMMARY_DESCRIPTION_LIMIT = 60


class ParamKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    ANY = "any"


_KIND_ALIASES = {
    "string": ParamKind.STRING,
    "number": ParamKind.NUMBER,
    "integer": ParamKind.NUMBER,
    "boolean": ParamKind.BOOLEAN,
    "array": ParamKind.ARRAY,
}


@dataclass(frozen=True, slots=True)
class ParamSpec:
    """One flattened top-level parameter."""

    name: str
    kind: ParamKind
    description: str = ""
    required: bool = False
    items: Optional["ParamSpec"] = None

    def python_type(self) -> Any:
        if self.kind is ParamKind.STRING:
            return str
        if self.kind is ParamKind.NUMBER:
            return Union[int, float]
        if self.kind is ParamKind.BOOLEAN:
            return bool
        if self.kind is ParamKind.ARRAY:
            item_type = self.items.python_type() if self.items else Any
            return List[item_type]
        return Any


def _kind_of(schema: Mapping[str, Any]) -> ParamKind:
    raw = schema.get("type")
    if isinstance(raw, list):
        raw = next((item for item in raw if item != "null"), None)
    return _KIND_ALIASES.get(str(raw), ParamKind.ANY) if raw else ParamKind.ANY


def _parse_one(name: str, schema: Mapping[str, Any], required: bool) -> ParamSpec:
    kind = _kind_of(schema)
    items = None
    if kind is ParamKind.ARRAY and isinstance(schema.get("items"), Mapping):
        items = _parse_one(f"{name}_item", schema["items"], required=True)
    return ParamSpec(
        name=name,
        kind=kind,
        description=str(schema.get("description", "") or ""),
        required=required,
        items=items,
    )


def parse_parameters(schema: Optional[Mapping[str, Any]]) -> Tuple[ParamSpec, ...]:
    """Flatten a JSON-Schema ``object`` into top-level parameter specs."""
    if not schema:
        return ()
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])
    return tuple(
        _parse_one(name, prop if isinstance(prop, Mapping) else {}, name in required)
        for name, prop in properties.items()
    )


def param_summary(params: Sequence[ParamSpec]) -> Tuple[str, ...]:
    """Short lines like ``entity_id (required) - Target device``."""
    lines = []
    for param in params:
        desc = param.description
        if len(desc) > SUMMARY_DESCRIPTION_LIMIT:
            desc = desc[: SUMMARY_DESCRIPTION_LIMIT - 3] + "..."
        label = f"{param.name} (required)" if param.required else f"{param.name}?"
        lines.append(f"{label} - {desc}" if desc else label)
    return tuple(lines)


def build_args_model(model_name: str, params: Sequence[ParamSpec]) -> Type[BaseModel]:
    """Pydantic model used to validate arguments and describe the tool schema."""
    fields: Dict[str, Any] = {}
    for param in params:
        annotation = param.python_type()
        if param.required:
            fields[param.name] = (annotation, Field(..., description=param.description or None))
        else:
            fields[param.name] = (Optional[annotation], Field(default=None, description=param.description or None))
    safe_name = "".join(ch if ch.isalnum() else "_" for ch in model_name) or "Args"
    return create_model(safe_name, __config__=ConfigDict(extra="allow"), **fields)
