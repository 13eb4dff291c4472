from __future__ import annotations

import logging
from uuid import uuid4

from fleet_api.common.logging import (
    ConsoleLogFormatter,
    bind_request_context,
    clear_request_context,
    log_context,
)


def _record(message: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="fleet_api.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_log_context_drops_missing_identifiers() -> None:
    user_id = uuid4()
    assert log_context(user_id=user_id, permission="edit_vehicles", reason=None) == {
        "user_id": str(user_id),
        "permission": "edit_vehicles",
        "reason": None,
    }
    assert log_context() == {}


def test_formatter_renders_extras_and_correlation_id() -> None:
    formatter = ConsoleLogFormatter()
    bind_request_context("req-123")
    try:
        line = formatter.format(
            _record("permissions.check.denied", permission="approve_expenses", reason=None)
        )
    finally:
        clear_request_context()

    assert "INFO" in line
    assert "[cid=req-123]" in line
    assert "permissions.check.denied" in line
    assert "permission=approve_expenses" in line
    assert "reason=null" in line


def test_formatter_uses_placeholder_without_correlation_id() -> None:
    line = ConsoleLogFormatter().format(_record("db.init.start"))
    assert "[cid=-]" in line
