"""
Pytest configuration and shared fixtures for client tests.

WHAT: Centralized test configuration with markers
WHY: Enable test organization, filtering, and shared test utilities
HOW: Define pytest markers, reset process-wide state, provide isolated collaborators
"""

import pytest

from chatbridge.llm.attachments import InMemoryAttachmentStore
from chatbridge.llm.capabilities import CapabilityMemory, default_capability_memory
from chatbridge.llm.transport import reset_transport
from tests.fixtures.fakes import CountingCredential


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (adapter + codec + mocked HTTP)"
    )


@pytest.fixture(autouse=True)
def reset_shared_state():
    """
    Reset process-wide state before each test.

    WHAT: Drop the shared transport and clear the default capability memory
    WHY: Prevent test pollution across event loops and models
    HOW: Reset before and after each test
    """
    reset_transport()
    default_capability_memory.reset()
    yield
    reset_transport()
    default_capability_memory.reset()


@pytest.fixture
def capability_memory() -> CapabilityMemory:
    """Isolated capability memory for one test."""
    return CapabilityMemory()


@pytest.fixture
def attachment_store() -> InMemoryAttachmentStore:
    """In-memory attachment loader and asset store."""
    return InMemoryAttachmentStore()


@pytest.fixture
def credential() -> CountingCredential:
    return CountingCredential()
