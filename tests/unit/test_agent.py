"""
Unit Tests - Parsing Pipeline
=============================
The extract -> verify graph, with the extractor mocked.
"""

from unittest.mock import MagicMock

import pytest

from agents.document_parser.agent import parse_document
from tools.document_schema import ExtractionResult


@pytest.fixture
def extractor(extraction_result):
    ext = MagicMock()
    ext.process_document.return_value = extraction_result
    return ext


class TestParseDocument:

    @pytest.mark.unit
    def test_structured_reply_gets_structured_verification(self, extractor):
        result = parse_document(file_bytes=b"img", filename="leave.jpg", user_id="pc1", extractor=extractor)

        extractor.process_document.assert_called_once_with(
            b"img", filename="leave.jpg", mime_type="image/jpeg", user_id="pc1",
        )
        assert result.document_type == "Earned Leave"
        assert result.stamp_verification.matched_reference == "officer_commanding"
        assert result.stamp_verification.confidence == 0.9
        assert result.signature_verification.confidence == pytest.approx(0.8)

    @pytest.mark.unit
    def test_raw_reply_falls_back_to_keywords(self, extractor):
        extractor.process_document.return_value = ExtractionResult(
            extracted_text="The letter carries an official seal at the bottom.",
            extracted_data={"rawResponse": "The letter carries an official seal at the bottom."},
            confidence=0.8,
        )
        result = parse_document(file_bytes=b"img", filename="x.png", extractor=extractor)

        assert result.stamp_verification.is_present
        assert result.stamp_verification.confidence == 0.7
        assert not result.signature_verification.is_present

    @pytest.mark.unit
    def test_url_input_is_downloaded(self, monkeypatch, extractor):
        fake_get = MagicMock(return_value=MagicMock(content=b"%PDF", headers={"Content-Type": "application/pdf"}))
        monkeypatch.setattr("agents.document_parser.agent.requests.get", fake_get)

        parse_document(file_url="https://files.example/u/form.pdf?token=abc", extractor=extractor)

        args, kwargs = extractor.process_document.call_args
        assert args == (b"%PDF",)
        assert kwargs["filename"] == "form.pdf"
        assert kwargs["mime_type"] == "application/pdf"

    @pytest.mark.unit
    def test_needs_input(self, extractor):
        with pytest.raises(ValueError):
            parse_document(extractor=extractor)
