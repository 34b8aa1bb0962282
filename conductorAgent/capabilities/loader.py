"""Provider discovery and loading.

A provider directory looks like::

    providers/
      notes/
        manifest.yaml      # or manifest.json
        handlers.py        # HANDLERS = {"search": search, ...}
        prompt.md          # optional prompt snippet

Providers can also be registered programmatically with ``ProviderLoader.register``.
"""

from __future__ import annotations

import importlib.util
import json
import logging
import sys
import threading
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import Dict, Iterable, List, Mapping, Optional

import yaml

from .manifest import Handler, LoadedProvider, ProviderManifest

LOGGER = logging.getLogger(__name__)

MANIFEST_FILES = ("manifest.yaml", "manifest.yml", "manifest.json")
HANDLERS_FILE = "handlers.py"
PROMPT_FILE = "prompt.md"


def read_manifest(path: Path) -> ProviderManifest:
    """Parse and validate a manifest file (YAML or JSON)."""
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    return ProviderManifest.model_validate(data or {})


def _import_handlers_module(provider_id: str, handlers_file: Path) -> ModuleType:
    module_name = f"conductor_providers.{provider_id.replace('-', '_')}"
    spec = importlib.util.spec_from_file_location(module_name, handlers_file)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load spec for {handlers_file}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def _extract_handlers(module: ModuleType, manifest: ProviderManifest) -> Dict[str, Handler]:
    """Find handlers in a module.

    1. A ``HANDLERS`` mapping of function name to callable
    2. Otherwise module-level callables named after the manifest's functions
    """
    exported = getattr(module, "HANDLERS", None)
    if isinstance(exported, Mapping):
        return {str(name): fn for name, fn in exported.items() if callable(fn)}

    handlers: Dict[str, Handler] = {}
    for fn in manifest.functions:
        obj = getattr(module, fn.name, None)
        if callable(obj):
            handlers[fn.name] = obj
    return handlers


def load_provider_directory(provider_dir: Path) -> LoadedProvider:
    """Load one provider folder. Raises on a missing or invalid manifest."""
    manifest_path = next((provider_dir / name for name in MANIFEST_FILES if (provider_dir / name).is_file()), None)
    if manifest_path is None:
        raise FileNotFoundError(f"No manifest found in {provider_dir}")

    manifest = read_manifest(manifest_path)

    handlers: Dict[str, Handler] = {}
    handlers_file = provider_dir / HANDLERS_FILE
    if handlers_file.is_file():
        module = _import_handlers_module(manifest.id, handlers_file)
        handlers = _extract_handlers(module, manifest)

    for fn in manifest.functions:
        if fn.name not in handlers:
            LOGGER.warning(f"Function '{fn.name}' declared in {manifest.id} manifest but no handler found")

    prompt_path = provider_dir / PROMPT_FILE
    prompt = prompt_path.read_text(encoding="utf-8") if prompt_path.is_file() else None

    return LoadedProvider(manifest=manifest, handlers=handlers, prompt=prompt)


class ProviderLoader:
    """Holds the set of loaded providers.

    Providers scanned from ``directories`` are replaced wholesale by each
    ``load_all()``; providers added with ``register()`` are kept across scans
    and win over a scanned provider with the same id.
    ``providers()`` returns a read-only snapshot that later loads never mutate.
    """

    def __init__(self, directories: Optional[Iterable[Path]] = None) -> None:
        self.directories: List[Path] = [Path(d) for d in (directories or [])]
        self._lock = threading.Lock()
        self._registered: Dict[str, LoadedProvider] = {}
        self._scanned: Dict[str, LoadedProvider] = {}
        self._providers: Dict[str, LoadedProvider] = {}

    def _publish(self) -> None:
        self._providers = {**self._scanned, **self._registered}

    def register(self, provider: LoadedProvider) -> None:
        with self._lock:
            if provider.id in self._providers:
                LOGGER.info(f"Replacing provider: {provider.id}")
            self._registered = {**self._registered, provider.id: provider}
            self._publish()

    def unregister(self, provider_id: str) -> None:
        with self._lock:
            self._registered = {k: v for k, v in self._registered.items() if k != provider_id}
            self._scanned = {k: v for k, v in self._scanned.items() if k != provider_id}
            self._publish()

    def load_all(self) -> Mapping[str, LoadedProvider]:
        """Rescan every configured directory; later directories override earlier ones."""
        loaded: Dict[str, LoadedProvider] = {}
        for directory in self.directories:
            loaded.update(self.scan_directory(directory))
        with self._lock:
            dropped = sorted(set(self._scanned) - set(loaded))
            self._scanned = loaded
            self._publish()
        if dropped:
            LOGGER.info(f"Providers no longer on disk: {dropped}")
        LOGGER.info(f"Loaded {len(loaded)} providers from {len(self.directories)} directories")
        return self.providers()

    def scan_directory(self, directory: Path) -> Dict[str, LoadedProvider]:
        providers: Dict[str, LoadedProvider] = {}

        if not directory.exists():
            LOGGER.warning(f"Provider directory does not exist: {directory}")
            return providers
        if not directory.is_dir():
            LOGGER.warning(f"Provider path is not a directory: {directory}")
            return providers

        LOGGER.info(f"Scanning provider directory: {directory}")
        for provider_dir in sorted(p for p in directory.iterdir() if p.is_dir() and not p.name.startswith((".", "_"))):
            try:
                provider = load_provider_directory(provider_dir)
            except Exception as e:
                LOGGER.error(f"Failed to load provider from {provider_dir.name}: {e}")
                continue
            providers[provider.id] = provider
            LOGGER.info(f"Loaded provider: {provider.id} ({provider.manifest.name})")
        return providers

    def providers(self) -> Mapping[str, LoadedProvider]:
        with self._lock:
            return MappingProxyType(self._providers)

    def get(self, provider_id: str) -> Optional[LoadedProvider]:
        with self._lock:
            return self._providers.get(provider_id)
