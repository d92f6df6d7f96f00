"""
Unit Tests - Document Repository
================================
Turning a model reply into a template-shaped record, and the hosted row layout.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from tools.document_schema import DocumentStatus, MarkVerification
from utils import documents_repo as repo
from utils.templates_catalog import get_built_in


class TestFlatten:

    @pytest.mark.unit
    def test_nested_keys_are_joined(self):
        flat = repo.flatten_extraction({"Reporting Officer": {"Name": "X", "Date": None}, "Salary": "1000"})
        assert flat == {"Reporting Officer / Name": "X", "Reporting Officer / Date": "", "Salary": "1000"}

    @pytest.mark.unit
    def test_lists(self):
        flat = repo.flatten_extraction({
            "Reference Orders": ["G.O. 12", "", "G.O. 15"],
            "Reward Details": [{"Rank": "PC", "Name": "A"}],
        })
        assert flat["Reference Orders"] == "G.O. 12, G.O. 15"
        assert flat["Reward Details"] == '[{"Rank": "PC", "Name": "A"}]'

    @pytest.mark.unit
    def test_non_dict(self):
        assert repo.flatten_extraction("text") == {}


class TestNormalize:

    @pytest.mark.unit
    def test_sections_are_found(self, extraction_result):
        norm = repo.normalize_extraction(extraction_result.extracted_data)
        assert norm["document_type"] == "Earned Leave"
        assert norm["document_status"] == "Approved"
        assert norm["solution"]["Name"] == "K. Ramesh"
        assert norm["signature"]["Name (if written)"] == "R. Prasad"

    @pytest.mark.unit
    def test_wrapped_and_case_insensitive(self):
        norm = repo.normalize_extraction({"result": {"document_type": "Reward Letter", "SOLUTION": {"Subject": "x"}}})
        assert norm["document_type"] == "Reward Letter"
        assert norm["solution"] == {"Subject": "x"}

    @pytest.mark.unit
    def test_raw_response(self):
        norm = repo.normalize_extraction({"rawResponse": "not json"})
        assert norm["solution"] == {}
        assert norm["document_type"] is None


class TestBuildRecord:

    @pytest.mark.unit
    def test_fields_follow_template(self, extraction_result):
        template = get_built_in("earned_leave")
        record = repo.build_document_record(
            extraction_result, template=template, created_by="pc1234", location="Ananthapuramu",
        )

        assert set(record.fields) == set(template.field_ids())
        assert record.fields["applicantName"] == "K. Ramesh"
        assert record.fields["duration"] == "10"
        assert record.fields["startDate"] == "02-01-2026"
        assert record.fields["reason"] == "Family function"
        assert record.fields["employeeId"] == ""
        assert record.status == DocumentStatus.PENDING
        assert record.confidence == 0.92
        assert record.id.startswith("doc_")

    @pytest.mark.unit
    def test_metadata(self, extraction_result):
        extraction_result.stamp_verification = MarkVerification(is_present=True, confidence=0.9)
        record = repo.build_document_record(
            extraction_result, template=get_built_in("earned_leave"), created_by="pc1234", location="HQ",
            tags=["qr-upload"],
        )

        assert record.metadata["detected_document_type"] == "Earned Leave"
        assert record.metadata["reported_status"] == "Approved"
        assert record.metadata["extracted_fields"]["PC No."] == "1432"
        assert record.processing_metadata["processing_time_ms"] == 1840
        assert record.processing_metadata["stamp_verification"]["is_present"] is True
        assert "signature_verification" not in record.processing_metadata
        assert record.tags == ["qr-upload"]

    @pytest.mark.unit
    def test_label_match_without_alias(self):
        template = get_built_in("medical_leave")
        fields = repo.map_to_template_fields(template, {"Hospital/Clinic Name": "Govt Hospital", "Doctor Name": ""})
        assert fields["hospitalName"] == "Govt Hospital"
        assert fields["doctorName"] == ""


class TestHostedRows:

    @pytest.mark.unit
    def test_row_layout(self, make_record):
        record = make_record(finalized_by="si7", finalized_on=datetime(2026, 1, 5, tzinfo=timezone.utc))
        row = repo.to_supabase_row(record)

        assert row["status"] == "pending"
        assert row["type"]["id"] == "earned_leave"
        assert row["metadata"]["finalized_by"] == "si7"
        assert row["metadata"]["finalized_on"] == "2026-01-05T00:00:00+00:00"
        assert row["document_data"] == ""
        assert isinstance(row["timestamp"], str)

    @pytest.mark.unit
    def test_upsert_and_delete(self, make_record):
        sb = MagicMock()
        record = make_record()

        repo.upsert_document_row(sb, record)
        sb.table.return_value.upsert.assert_called_once()
        assert sb.table.return_value.upsert.call_args.kwargs == {"on_conflict": "id"}

        repo.delete_document_row(sb, record.id)
        sb.table.return_value.delete.return_value.eq.assert_called_with("id", record.id)

    @pytest.mark.unit
    def test_no_rows_no_call(self):
        sb = MagicMock()
        assert repo.upsert_document_rows(sb, []) is None
        sb.table.assert_not_called()

    @pytest.mark.unit
    def test_json_safe(self):
        assert repo.to_json_safe({"a": Decimal("1.5"), "b": (1,), "s": DocumentStatus.FINALIZED}) == {
            "a": 1.5, "b": [1], "s": "finalized",
        }
