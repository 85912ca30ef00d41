"""Global pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from lodestore.observability.logging import current_context


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: needs Docker to run PostgreSQL"
    )


@pytest.fixture(autouse=True)
def _no_leaked_log_context():
    """Operations must not leave their log context behind."""
    yield
    assert current_context() == {}
