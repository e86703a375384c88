"""
Pytest fixtures for the audit chain test suite.
"""

import pytest

from auditchain.core.config import get_settings

TEST_OPERATOR_TOKEN = "test-operator-token-0123456789abcdef"


@pytest.fixture(autouse=True)
def audit_test_settings(monkeypatch: pytest.MonkeyPatch):
    """Run every test against development settings with an operator token."""
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("AUDIT_OPERATOR_TOKEN", TEST_OPERATOR_TOKEN)
    monkeypatch.delenv("AUDIT_VERIFY_BATCH_SIZE", raising=False)
    monkeypatch.delenv("AUDIT_DEFAULT_PARTITION", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def operator_headers() -> dict[str, str]:
    """Authorization header accepted by the operator endpoints."""
    return {"Authorization": f"Bearer {TEST_OPERATOR_TOKEN}"}
