"""Pytest configuration for the shopping agent tests."""

import pytest

from merchants import create_acp_merchant, create_ucp_merchant


# ---------------------------------------------------------------------------
# Merchant doubles: a fresh app per test so sessions and orders never leak.
# ---------------------------------------------------------------------------

@pytest.fixture
def ucp_merchant():
    """REST-only UCP merchant at shop.test."""
    return create_ucp_merchant()


@pytest.fixture
def mcp_merchant():
    """UCP merchant exposing only the JSON-RPC transport."""
    return create_ucp_merchant(transports=("mcp",))


@pytest.fixture
def dual_merchant():
    """UCP merchant exposing both REST and JSON-RPC."""
    return create_ucp_merchant(transports=("rest", "mcp"))


@pytest.fixture
def acp_merchant():
    return create_acp_merchant()


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    """Unset agent settings from the shell or a local .env file."""
    for name in (
        "UCP_AGENT_MAX_ITERATIONS", "UCP_AGENT_VERBOSE", "UCP_REQUEST_TIMEOUT",
        "UCP_TRANSPORT", "ACP_ENDPOINT", "ACP_API_KEY", "ACP_API_VERSION", "OPENAI_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)
