"""
Unit Tests - Logging and Errors
===============================
Secret redaction in log events and the error payloads the API returns.
"""

import pytest

from utils.exceptions import (
    DocumentNotFoundError,
    DocumentValidationError,
    ExtractionError,
    SparkError,
    UploadSessionError,
)
from utils.logging_config import add_app_context, sanitize_event


class TestSanitizeEvent:

    @pytest.mark.unit
    def test_secrets_are_redacted(self):
        event = {"event": "client_created", "api_key": "sk-123", "nested": {"service_key": "x", "ok": 1}}
        out = sanitize_event(None, "info", event)

        assert out["api_key"] == "***REDACTED***"
        assert out["nested"]["service_key"] == "***REDACTED***"
        assert out["nested"]["ok"] == 1

    @pytest.mark.unit
    def test_long_strings_are_truncated(self):
        out = sanitize_event(None, "info", {"event": "reply", "text": "x" * 5000})
        assert out["text"].endswith("...[truncated]")
        assert len(out["text"]) < 200

    @pytest.mark.unit
    def test_app_context(self):
        assert add_app_context(None, "info", {})["app"] == "spark"


class TestErrors:

    @pytest.mark.unit
    def test_to_dict(self):
        err = ExtractionError("Document processing failed: boom", model="pixtral", file_name="a.png",
                              original_error=RuntimeError("boom"))
        payload = err.to_dict()

        assert payload["error_type"] == "ExtractionError"
        assert payload["context"] == {"model": "pixtral", "file_name": "a.png"}
        assert payload["original_error"] == "boom"

    @pytest.mark.unit
    def test_validation_error_carries_missing_fields(self):
        err = DocumentValidationError("Required fields are empty", doc_id="doc_1", missing_fields=["Name"])
        assert err.missing_fields == ["Name"]
        assert err.to_dict()["context"]["missing_fields"] == ["Name"]

    @pytest.mark.unit
    def test_hierarchy(self):
        for err in (DocumentNotFoundError("doc_1"), UploadSessionError()):
            assert isinstance(err, SparkError)
        assert UploadSessionError().message == "Invalid or expired session"
