from __future__ import annotations

import logging

from app.core.logging_config import REDACTED, RedactSasFilter, setup_logging


def _record(msg, args):
    return logging.LogRecord("app.routers.storage", logging.INFO, __file__, 1, msg, args, None)


def test_signature_values_are_redacted():
    record = _record("signed %s", ("https://a.blob.core.windows.net/c/b.jpg?sv=2020-10-02&sig=abc%2Bdef&se=x",))

    assert RedactSasFilter().filter(record) is True
    message = record.getMessage()
    assert f"sig={REDACTED}&se=x" in message
    assert "abc" not in message


def test_messages_without_signature_are_untouched():
    record = _record("storage/files: userId=%s", ("user123",))

    RedactSasFilter().filter(record)

    assert record.args == ("user123",)
    assert record.getMessage() == "storage/files: userId=user123"


def test_setup_logging_installs_redaction_once():
    root = logging.getLogger()
    handler = logging.StreamHandler()
    saved_handlers, saved_level = root.handlers[:], root.level
    root.handlers = [handler]
    try:
        setup_logging("DEBUG")
        setup_logging("DEBUG")
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)

    assert sum(isinstance(f, RedactSasFilter) for f in handler.filters) == 1
    assert logging.getLogger("httpx").level == logging.WARNING
