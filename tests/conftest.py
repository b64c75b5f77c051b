"""
Pytest configuration and shared fixtures for nostrpool tests.

Provides:
- Fixed keypairs (BIP-340 test vector 0 and a second signer)
- Signed sample events
- Fast session and pool configurations for reconnect tests
- In-memory relays via ``tests.fixtures.relays``
"""

import logging

import pytest

from nostrpool.core.pool import RelayPoolConfig
from nostrpool.core.session import RetryConfig, SessionConfig
from nostrpool.models import Event, Keys, UnsignedEvent


pytest_plugins = ["tests.fixtures.relays"]

# BIP-340 test vector 0
VECTOR0_SECRET = "0000000000000000000000000000000000000000000000000000000000000003"  # pragma: allowlist secret
VECTOR0_PUBKEY = "f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9"

VALID_HEX_KEY = "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Keys and Events
# ============================================================================


@pytest.fixture
def keys() -> Keys:
    """BIP-340 vector 0 keypair."""
    return Keys.parse(VECTOR0_SECRET)


@pytest.fixture
def other_keys() -> Keys:
    return Keys.parse(VALID_HEX_KEY)


@pytest.fixture
def note(keys: Keys) -> Event:
    """Scenario A text note."""
    return UnsignedEvent(kind=1, content="hello", created_at=1_700_000_000).sign(keys)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def fast_session_config() -> SessionConfig:
    """Millisecond backoff without jitter."""
    return SessionConfig(
        connect_timeout=1.0,
        max_queue_size=100,
        stability_threshold=60.0,
        retry=RetryConfig(initial_delay=0.01, max_delay=0.05, jitter=0.0),
    )


@pytest.fixture
def pool_config(fast_session_config: SessionConfig) -> RelayPoolConfig:
    return RelayPoolConfig(name="test", session=fast_session_config)
