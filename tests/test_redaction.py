"""
Tests for log redaction and the structured logging pipeline.
"""

import json
import logging

import pytest

from keygate.core.redaction import REDACTED, redact_log_entry, redact_string
from keygate.core.structured_logging import (
    APP_VERSION,
    SERVICE_NAME,
    _inject_context,
    correlation_id_var,
    request_id_var,
    setup_logging,
)

SECRET = "9f" * 32
VERIFIER = "ab" * 64


class TestRedactString:
    def test_raw_key_redacted(self):
        assert redact_string(f"presented {SECRET}") == f"presented {REDACTED}"

    def test_verifier_redacted(self):
        assert VERIFIER not in redact_string(VERIFIER)

    def test_request_ids_survive(self):
        request_id = "0123456789abcdef0123456789abcdef"
        assert redact_string(request_id) == request_id

    def test_plain_text_untouched(self):
        assert redact_string("api_key_revoked") == "api_key_revoked"


class TestRedactLogEntry:
    @pytest.mark.parametrize("key", ["secret", "apiKey", "api_key", "Authorization", "salt", "key_hash", "verifier"])
    def test_sensitive_keys(self, key):
        assert redact_log_entry({key: "value"})[key] == REDACTED

    def test_none_values_kept(self):
        assert redact_log_entry({"salt": None}) == {"salt": None}

    def test_nested(self):
        entry = {"request": {"headers": {"authorization": "Bearer x"}, "items": [SECRET, "ok"]}}
        redacted = redact_log_entry(entry)
        assert redacted["request"]["headers"]["authorization"] == REDACTED
        assert redacted["request"]["items"] == [REDACTED, "ok"]

    def test_key_id_is_not_sensitive(self):
        assert redact_log_entry({"key_id": 7, "owner": "svc"}) == {"key_id": 7, "owner": "svc"}


class TestInjectContext:
    def test_adds_service_and_ids(self):
        rid = request_id_var.set("req-1")
        cid = correlation_id_var.set("corr-1")
        try:
            event = _inject_context(None, "info", {"event": "x"})
        finally:
            request_id_var.reset(rid)
            correlation_id_var.reset(cid)
        assert event["service"] == SERVICE_NAME
        assert event["version"] == APP_VERSION
        assert event["request_id"] == "req-1"
        assert event["correlation_id"] == "corr-1"

    def test_omits_unset_ids(self):
        event = _inject_context(None, "info", {"event": "x"})
        assert "request_id" not in event
        assert "correlation_id" not in event


class TestJsonLogFile:
    def test_stdlib_extra_rendered_and_redacted(self, tmp_path):
        setup_logging(log_dir=str(tmp_path), log_level="INFO", to_file=True)
        try:
            logging.getLogger("keygate.test").info(
                "api_key_issued",
                extra={"key_id": 3, "verifier": VERIFIER, "note": f"leaked {SECRET}"},
            )
            for handler in logging.getLogger().handlers:
                handler.flush()

            lines = (tmp_path / "keygate.jsonl").read_text().strip().splitlines()
            entry = json.loads(lines[-1])
        finally:
            setup_logging(log_level="INFO", to_file=False)

        assert entry["event"] == "api_key_issued"
        assert entry["level"] == "info"
        assert entry["service"] == "keygate"
        assert entry["key_id"] == 3
        assert entry["verifier"] == REDACTED
        assert SECRET not in lines[-1]
        assert "ts" in entry
