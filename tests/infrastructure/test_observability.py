"""Structured Logging — tests for the JSON formatter and handler setup."""

import json
import logging

from trustlend.infrastructure.observability import (
    JSONFormatter,
    _TrustLendHandler,
    setup_logging,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "trustlend.test", logging.INFO, __file__, 1, "Loan repaid", None, None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_base_fields():
    data = json.loads(JSONFormatter().format(_record()))
    assert data["level"] == "INFO"
    assert data["logger"] == "trustlend.test"
    assert data["message"] == "Loan repaid"
    assert "timestamp" in data


def test_json_formatter_surfaces_known_extras_only():
    data = json.loads(JSONFormatter().format(
        _record(loan_id="loan_1_abc", tx_hash="ABC", secret="sXYZ"),
    ))
    assert data["loan_id"] == "loan_1_abc"
    assert data["tx_hash"] == "ABC"
    assert "secret" not in data


def test_setup_logging_replaces_previous_handler():
    previous_level = logging.root.level
    setup_logging("DEBUG", "json")
    setup_logging("WARNING", "text")
    ours = [h for h in logging.root.handlers if isinstance(h, _TrustLendHandler)]
    try:
        assert len(ours) == 1
        assert logging.root.level == logging.WARNING
        assert not isinstance(ours[0].formatter, JSONFormatter)
    finally:
        for handler in ours:
            logging.root.removeHandler(handler)
        logging.root.setLevel(previous_level)
