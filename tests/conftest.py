"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
"""

import sys
from pathlib import Path

import pytest

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Shared fakes live next to this file
tests_root = Path(__file__).parent
if str(tests_root) not in sys.path:
    sys.path.insert(0, str(tests_root))

from conductorAgent.capabilities.config_store import InMemoryConfigStore  # noqa: E402
from conductorAgent.capabilities.loader import ProviderLoader  # noqa: E402
from conductorAgent.capabilities.registry import CapabilityRegistry  # noqa: E402

from fakes import sample_providers  # noqa: E402


@pytest.fixture
def config_store():
    """Store with the sample home-automation and Google providers fully configured."""
    store = InMemoryConfigStore()
    store.set_provider("hass", config={"api_token": "token-123"})
    store.set_provider("google", config={"refresh_token": "refresh-abc"}, allow_without_asking=True)
    return store


@pytest.fixture
def loader():
    """Loader holding the sample providers, registered programmatically."""
    provider_loader = ProviderLoader()
    for provider in sample_providers():
        provider_loader.register(provider)
    return provider_loader


@pytest.fixture
def registry(loader, config_store):
    """Registry built over the sample providers."""
    capability_registry = CapabilityRegistry(loader.providers, config_store)
    capability_registry.rebuild()
    return capability_registry
