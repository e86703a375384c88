"""Tests for structured logging configuration."""

from __future__ import annotations

import structlog

from auditchain.core.logging import _drop_snapshots, configure_logging, get_logger


def test_snapshots_are_redacted() -> None:
    event = _drop_snapshots(
        None,
        "info",
        {"event": "audit_event_appended", "new_data": {"salary": 1}, "old_data": None},
    )
    assert event["new_data"] == "[redacted]"
    assert event["old_data"] == "[redacted]"
    assert event["event"] == "audit_event_appended"


def test_other_keys_are_untouched() -> None:
    event = _drop_snapshots(None, "info", {"event": "x", "entity": "invoice"})
    assert event == {"event": "x", "entity": "invoice"}


def test_configure_logging_is_repeatable() -> None:
    configure_logging()
    configure_logging()
    assert structlog.is_configured()
    assert get_logger(__name__) is not None
