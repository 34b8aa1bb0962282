"""Capability providers: manifests, loading, stored configuration and the routing registry."""

from .config_store import ConfigStore, InMemoryConfigStore, ProviderSettings, YamlConfigStore
from .loader import ProviderLoader, load_provider_directory
from .manifest import CredentialSpec, FunctionSpec, LoadedProvider, ModuleSpec, ProviderManifest
from .registry import (
    CapabilityRegistry,
    FunctionLookup,
    ModuleCatalogEntry,
    RegistryEntry,
    SearchHit,
    format_module_catalog,
    tokenize,
)

__all__ = [
    "CapabilityRegistry",
    "ConfigStore",
    "CredentialSpec",
    "FunctionLookup",
    "FunctionSpec",
    "InMemoryConfigStore",
    "LoadedProvider",
    "ModuleCatalogEntry",
    "ModuleSpec",
    "ProviderLoader",
    "ProviderManifest",
    "ProviderSettings",
    "RegistryEntry",
    "SearchHit",
    "YamlConfigStore",
    "format_module_catalog",
    "load_provider_directory",
    "tokenize",
]
