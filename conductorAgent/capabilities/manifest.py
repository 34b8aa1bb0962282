"""Provider manifests and loaded provider bundles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from .params import ParamSpec, parse_parameters

# handler(arguments, credentials) -> result, sync or async
Handler = Callable[[Dict[str, Any], Dict[str, str]], Union[Any, Awaitable[Any]]]


class CredentialSpec(BaseModel):
    """A credential or setting key a provider reads from stored configuration."""

    name: str
    label: Optional[str] = None
    required: bool = True
    secret: bool = True


class FunctionSpec(BaseModel):
    """One callable function of a provider."""

    model_config = ConfigDict(extra="ignore")

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)

    _params: Tuple[ParamSpec, ...] = PrivateAttr(default=())

    def model_post_init(self, __context: Any) -> None:
        self._params = parse_parameters(self.parameters)

    @property
    def params(self) -> Tuple[ParamSpec, ...]:
        return self._params


class ModuleSpec(BaseModel):
    """A named group of a provider's functions, the unit a plan step targets."""

    id: str
    name: str
    description: str = ""
    functions: List[str] = Field(default_factory=list)


class ProviderManifest(BaseModel):
    """Declarative description of a capability provider."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: str = ""
    category: str = "other"
    credentials: List[CredentialSpec] = Field(default_factory=list)
    oauth: bool = False
    direct: bool = False
    default_enabled: bool = False
    modules: List[ModuleSpec] = Field(default_factory=list)
    functions: List[FunctionSpec] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        value = value.strip()
        if not value or ":" in value:
            raise ValueError("provider id must be non-empty and must not contain ':'")
        return value

    def required_credentials(self) -> List[str]:
        return [cred.name for cred in self.credentials if cred.required]

    def get_function(self, name: str) -> Optional[FunctionSpec]:
        return next((fn for fn in self.functions if fn.name == name), None)


@dataclass
class LoadedProvider:
    """A manifest together with its handlers and optional prompt snippet."""

    manifest: ProviderManifest
    handlers: Mapping[str, Handler] = field(default_factory=dict)
    prompt: Optional[str] = None

    @property
    def id(self) -> str:
        return self.manifest.id
