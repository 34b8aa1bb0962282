"""Read-only view of stored provider configuration.

The core never writes provider configuration; external management code does.
Lookups go through the store on every call so changes are honored immediately.

YAML layout read by ``YamlConfigStore``::

    providers:
      notes:
        enabled: true
        allow_without_asking: false
        config:
          api_key: "..."
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import yaml

LOGGER = logging.getLogger(__name__)

OAUTH_COMPLETION_KEY = "refresh_token"


@dataclass(frozen=True)
class ProviderSettings:
    """Stored state of one provider."""

    enabled: bool = False
    config: Mapping[str, str] = field(default_factory=dict)
    allow_without_asking: bool = False

    @property
    def oauth_completed(self) -> bool:
        return bool(self.config.get(OAUTH_COMPLETION_KEY))

    def has_credentials(self, names) -> bool:
        return all(self.config.get(name) for name in names)


class ConfigStore(Protocol):
    def get_provider(self, provider_id: str) -> Optional[ProviderSettings]:
        """Stored settings for a provider, or None when it was never configured."""
        ...


class InMemoryConfigStore:
    """Dictionary-backed store, mutated by management code or tests."""

    def __init__(self, providers: Optional[Mapping[str, ProviderSettings]] = None) -> None:
        self._lock = threading.Lock()
        self._providers: Dict[str, ProviderSettings] = dict(providers or {})

    def get_provider(self, provider_id: str) -> Optional[ProviderSettings]:
        with self._lock:
            return self._providers.get(provider_id)

    def set_provider(
        self,
        provider_id: str,
        *,
        enabled: bool = True,
        config: Optional[Mapping[str, str]] = None,
        allow_without_asking: bool = False,
    ) -> None:
        with self._lock:
            self._providers[provider_id] = ProviderSettings(
                enabled=enabled,
                config=dict(config or {}),
                allow_without_asking=allow_without_asking,
            )

    def update_provider(self, provider_id: str, **changes: Any) -> None:
        with self._lock:
            current = self._providers.get(provider_id, ProviderSettings())
            if "config" in changes:
                changes["config"] = dict(changes["config"] or {})
            self._providers[provider_id] = replace(current, **changes)

    def remove_provider(self, provider_id: str) -> None:
        with self._lock:
            self._providers.pop(provider_id, None)


class YamlConfigStore:
    """Store backed by a YAML file, re-read whenever the file changes on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._stamp: Optional[Tuple[int, int]] = None
        self._providers: Dict[str, ProviderSettings] = {}

    def _parse(self, data: Any) -> Dict[str, ProviderSettings]:
        providers: Dict[str, ProviderSettings] = {}
        if data is None:
            return providers
        if not isinstance(data, Mapping):
            LOGGER.warning(f"Ignoring provider config {self.path}: top level is not a mapping")
            return providers
        section = data.get("providers") or {}
        if not isinstance(section, Mapping):
            LOGGER.warning(f"Ignoring malformed 'providers' section in {self.path}")
            return providers
        for provider_id, raw in section.items():
            raw = raw or {}
            if not isinstance(raw, Mapping):
                LOGGER.warning(f"Skipping provider '{provider_id}' in {self.path}: entry is not a mapping")
                continue
            raw_config = raw.get("config") or {}
            if not isinstance(raw_config, Mapping):
                LOGGER.warning(f"Ignoring config of provider '{provider_id}' in {self.path}: not a mapping")
                raw_config = {}
            config = {str(k): str(v) for k, v in raw_config.items() if v is not None}
            providers[str(provider_id)] = ProviderSettings(
                enabled=bool(raw.get("enabled", False)),
                config=config,
                allow_without_asking=bool(raw.get("allow_without_asking", False)),
            )
        return providers

    def _refresh(self) -> None:
        if not self.path.exists():
            if self._stamp is not None:
                LOGGER.info(f"Provider config {self.path} removed")
            self._stamp = None
            self._providers = {}
            return
        stat = self.path.stat()
        stamp = (stat.st_mtime_ns, stat.st_size)
        if stamp == self._stamp:
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            # Last good settings stay in effect until the file changes again.
            LOGGER.error(f"Failed to read provider config {self.path}, keeping previous settings: {e}")
            self._stamp = stamp
            return
        self._providers = self._parse(data)
        self._stamp = stamp
        LOGGER.debug(f"Loaded provider config from {self.path}: {sorted(self._providers)}")

    def get_provider(self, provider_id: str) -> Optional[ProviderSettings]:
        with self._lock:
            self._refresh()
            return self._providers.get(provider_id)
