"""Capability registry: the searchable index of currently callable provider functions.

The index is an immutable ``RegistrySnapshot``. ``rebuild()`` computes a new snapshot
from the live providers and stored configuration, then swaps the reference, so
readers always see either the old or the new index in full.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config_store import ConfigStore, ProviderSettings
from .manifest import FunctionSpec, Handler, LoadedProvider, ProviderManifest
from .params import param_summary

LOGGER = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10

_TOKEN_SPLIT = re.compile(r"[\s\-_/,.;:()]+")


def tokenize(text: str) -> List[str]:
    """Lowercase keyword tokens; tokens of length 1 are dropped."""
    return [token for token in _TOKEN_SPLIT.split((text or "").lower()) if len(token) > 1]


def composite_name(provider_id: str, function_name: str) -> str:
    return f"{provider_id}_{function_name}"


def parse_module_ref(module_ref: str) -> Optional[Tuple[str, str]]:
    provider_id, sep, module_id = (module_ref or "").strip().partition(":")
    if not sep or not provider_id or not module_id:
        return None
    return provider_id, module_id


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """One routable function of an enabled, fully credentialed provider."""

    provider_id: str
    function_name: str
    full_name: str
    description: str
    param_summary: Tuple[str, ...]
    category: str
    keywords: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SearchHit:
    name: str
    description: str
    params: Tuple[str, ...]
    category: str
    score: float


@dataclass(frozen=True, slots=True)
class ModuleCatalogEntry:
    module_ref: str
    name: str
    service: str
    description: str
    category: str


@dataclass(frozen=True)
class FunctionLookup:
    """Everything needed to invoke one function right now."""

    full_name: str
    handler: Handler
    credentials: Mapping[str, str]
    manifest: ProviderManifest
    function: FunctionSpec
    auto_allow: bool


@dataclass(frozen=True)
class RegistrySnapshot:
    entries: Tuple[RegistryEntry, ...] = ()
    by_name: Mapping[str, RegistryEntry] = field(default_factory=dict)
    manifests: Mapping[str, ProviderManifest] = field(default_factory=dict)

    @classmethod
    def build(cls, entries: Sequence[RegistryEntry], manifests: Mapping[str, ProviderManifest]) -> "RegistrySnapshot":
        return cls(
            entries=tuple(entries),
            by_name=MappingProxyType({entry.full_name: entry for entry in entries}),
            manifests=MappingProxyType(dict(manifests)),
        )


def provider_is_available(manifest: ProviderManifest, settings: Optional[ProviderSettings]) -> bool:
    """Enabled, all required credentials present, OAuth completed when the provider uses it."""
    if settings is None:
        if not manifest.default_enabled:
            return False
        settings = ProviderSettings(enabled=True)
    if not settings.enabled:
        return False
    if not settings.has_credentials(manifest.required_credentials()):
        return False
    if manifest.oauth and not settings.oauth_completed:
        return False
    return True


def resolve_settings(manifest: ProviderManifest, store: ConfigStore) -> Optional[ProviderSettings]:
    settings = store.get_provider(manifest.id)
    if settings is None and manifest.default_enabled:
        return ProviderSettings(enabled=True)
    return settings


def format_module_catalog(entries: Iterable[ModuleCatalogEntry]) -> str:
    """One line per module, module ref in backticks."""
    lines = []
    for entry in entries:
        service = f" ({entry.service})" if entry.service and entry.service != entry.name else ""
        description = f": {entry.description}" if entry.description else ""
        lines.append(f"- `{entry.module_ref}` - {entry.name}{service}{description}")
    return "\n".join(lines)


class CapabilityRegistry:
    """Index of routable provider functions.

    Args:
        providers: callable returning the currently loaded providers
        config_store: read-only view of enablement, credentials and auto-allow flags
    """

    def __init__(
        self,
        providers: Callable[[], Mapping[str, LoadedProvider]],
        config_store: ConfigStore,
    ) -> None:
        self._providers = providers
        self._config_store = config_store
        self._rebuild_lock = threading.Lock()
        self._snapshot = RegistrySnapshot()

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    @property
    def entries(self) -> Tuple[RegistryEntry, ...]:
        return self._snapshot.entries

    def rebuild(self) -> RegistrySnapshot:
        """Recompute the index from live providers and stored configuration."""
        with self._rebuild_lock:
            entries: List[RegistryEntry] = []
            manifests: Dict[str, ProviderManifest] = {}

            for provider_id, loaded in self._providers().items():
                manifest = loaded.manifest
                if manifest.direct:
                    continue
                settings = resolve_settings(manifest, self._config_store)
                if not provider_is_available(manifest, settings):
                    continue

                manifests[provider_id] = manifest
                for fn in manifest.functions:
                    entries.append(self._build_entry(manifest, fn))

            snapshot = RegistrySnapshot.build(entries, manifests)
            self._snapshot = snapshot

        LOGGER.info(f"Capability registry rebuilt: {len(snapshot.entries)} routed functions from {len(manifests)} providers")
        return snapshot

    @staticmethod
    def _build_entry(manifest: ProviderManifest, fn: FunctionSpec) -> RegistryEntry:
        keywords = [
            *tokenize(manifest.id),
            *tokenize(fn.name),
            *tokenize(fn.description),
            *tokenize(manifest.name),
            *tokenize(manifest.category),
        ]
        return RegistryEntry(
            provider_id=manifest.id,
            function_name=fn.name,
            full_name=composite_name(manifest.id, fn.name),
            description=fn.description,
            param_summary=param_summary(fn.params),
            category=manifest.category,
            keywords=tuple(dict.fromkeys(keywords)),
        )

    def search(self, query: str, category: Optional[str] = None, limit: int = DEFAULT_SEARCH_LIMIT) -> List[SearchHit]:
        """Keyword-overlap search over the current snapshot."""
        query_tokens = tokenize(query)
        if not query_tokens or limit <= 0:
            return []

        candidates = self._snapshot.entries
        if category:
            candidates = tuple(entry for entry in candidates if entry.category == category)

        scored: List[Tuple[float, RegistryEntry]] = []
        for entry in candidates:
            score = 0.0
            full_name = entry.full_name.lower()
            for token in query_tokens:
                if token in entry.keywords:
                    score += 1
                if any(kw != token and (token in kw or kw in token) for kw in entry.keywords):
                    score += 0.5
                if token in full_name:
                    score += 0.5
            if score > 0:
                scored.append((score, entry))

        # sorted() is stable, ties keep insertion order
        scored = sorted(scored, key=lambda item: item[0], reverse=True)[:limit]
        return [
            SearchHit(
                name=entry.full_name,
                description=entry.description,
                params=entry.param_summary,
                category=entry.category,
                score=score,
            )
            for score, entry in scored
        ]

    def lookup(self, full_name: str) -> Optional[FunctionLookup]:
        """Resolve a composite name, re-validating the provider against live configuration."""
        entry = self._snapshot.by_name.get(full_name)
        if entry is None:
            return None

        loaded = self._providers().get(entry.provider_id)
        if loaded is None:
            return None
        handler = loaded.handlers.get(entry.function_name)
        function = loaded.manifest.get_function(entry.function_name)
        if handler is None or function is None:
            return None

        settings = resolve_settings(loaded.manifest, self._config_store)
        if settings is None or not provider_is_available(loaded.manifest, settings):
            LOGGER.info(f"Lookup rejected for {full_name}: provider {entry.provider_id} is no longer available")
            return None

        return FunctionLookup(
            full_name=full_name,
            handler=handler,
            credentials=dict(settings.config),
            manifest=loaded.manifest,
            function=function,
            auto_allow=settings.allow_without_asking,
        )

    def module_catalog(self) -> List[ModuleCatalogEntry]:
        """One entry per module with at least one live function."""
        snapshot = self._snapshot
        live = {(entry.provider_id, entry.function_name) for entry in snapshot.entries}
        catalog: List[ModuleCatalogEntry] = []

        for provider_id, manifest in snapshot.manifests.items():
            if manifest.modules:
                for module in manifest.modules:
                    if not any((provider_id, fn) in live for fn in module.functions):
                        continue
                    catalog.append(
                        ModuleCatalogEntry(
                            module_ref=f"{provider_id}:{module.id}",
                            name=module.name,
                            service=manifest.name,
                            description=module.description,
                            category=manifest.category,
                        )
                    )
            elif any(pid == provider_id for pid, _ in live):
                catalog.append(
                    ModuleCatalogEntry(
                        module_ref=f"{provider_id}:{provider_id}",
                        name=manifest.name,
                        service=manifest.name,
                        description=manifest.description,
                        category=manifest.category,
                    )
                )
        return catalog

    def format_module_catalog(self) -> str:
        return format_module_catalog(self.module_catalog())

    def module_functions(self, module_ref: str) -> Optional[List[str]]:
        """Composite names reachable through a module, filtered to live entries.

        Returns None for a malformed or unknown module reference.
        """
        parsed = parse_module_ref(module_ref)
        if parsed is None:
            return None
        provider_id, module_id = parsed

        snapshot = self._snapshot
        manifest = snapshot.manifests.get(provider_id)
        if manifest is None:
            return None

        if manifest.modules:
            module = next((m for m in manifest.modules if m.id == module_id), None)
            if module is None:
                return None
            names = [composite_name(provider_id, fn) for fn in module.functions]
            return [name for name in names if name in snapshot.by_name]

        if module_id == provider_id:
            return [entry.full_name for entry in snapshot.entries if entry.provider_id == provider_id]
        return None

    def provider_prompt(self, provider_id: str) -> Optional[str]:
        loaded = self._providers().get(provider_id)
        return loaded.prompt if loaded else None

    def categories(self) -> List[Tuple[str, int]]:
        """Distinct categories with their function counts, largest first."""
        counts = Counter(entry.category for entry in self._snapshot.entries)
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))

    def function_spec(self, full_name: str) -> Optional[FunctionSpec]:
        """Manifest function behind a live composite name."""
        entry = self._snapshot.by_name.get(full_name)
        if entry is None:
            return None
        manifest = self._snapshot.manifests.get(entry.provider_id)
        return manifest.get_function(entry.function_name) if manifest else None
