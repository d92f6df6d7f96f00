"""
SPARK - Test Configuration
==========================
Shared fixtures: a throwaway SQLite store, a field cipher, record factories
and a sample model reply for an earned leave letter.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from cryptography.fernet import Fernet

# Add src to path for imports
SRC_PATH = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(SRC_PATH))

from tools.document_schema import DocumentRecord, ExtractionResult  # noqa: E402
from utils.local_store import LocalDocumentStore  # noqa: E402
from utils.security import FieldCipher  # noqa: E402
from utils.templates_catalog import get_built_in  # noqa: E402


COMPLETE_EARNED_LEAVE = {
    "applicantName": "K. Ramesh",
    "employeeId": "PC-1432",
    "department": "14th Bn APSP",
    "designation": "Police Constable",
    "leaveType": "Earned Leave",
    "startDate": "02-01-2026",
    "endDate": "11-01-2026",
    "duration": "10",
    "reason": "Family function",
    "supervisorName": "R. Prasad",
    "applicationDate": "28-12-2025",
    "contactNumber": "",
    "emergencyContact": "",
}

EARNED_LEAVE_REPLY = {
    "Document Type": "Earned Leave",
    "Solution": {
        "R c No.": "A1/245/2025",
        "H.O.D No.": "112",
        "PC No.": "1432",
        "Name": "K. Ramesh",
        "Date": "28-12-2025",
        "Number of Days": "10",
        "Leave From Date": "02-01-2026",
        "Leave To Date": "11-01-2026",
        "Leave Reason": "Family function",
    },
    "Stamp": {
        "Stamp Validation": "Officer Commanding 14th Bn APSP Ananthapuramu",
        "Signature": {"Name (if written)": "R. Prasad", "Date (if written)": "29-12-2025"},
    },
    "Document Status": "Approved",
}


@pytest.fixture
def cipher() -> FieldCipher:
    return FieldCipher(Fernet.generate_key())


@pytest.fixture
def store(tmp_path, cipher) -> LocalDocumentStore:
    """Fresh SQLite store per test."""
    return LocalDocumentStore(f"sqlite:///{tmp_path / 'spark.db'}", cipher)


@pytest.fixture
def make_record():
    """Factory for earned leave records; keyword overrides replace any attribute."""

    def _make(**overrides) -> DocumentRecord:
        template = get_built_in("earned_leave")
        data = {
            "type": template.ref(),
            "fields": dict(COMPLETE_EARNED_LEAVE),
            "ocr_raw_text": "Earned leave application of K. Ramesh",
            "created_by": "pc1234",
            "location": "Ananthapuramu",
            "confidence": 0.8,
        }
        data.update(overrides)
        return DocumentRecord(**data)

    return _make


@pytest.fixture
def extraction_result() -> ExtractionResult:
    return ExtractionResult(
        extracted_text="```json\n{...}\n```",
        document_type="Earned Leave",
        extracted_data=EARNED_LEAVE_REPLY,
        confidence=0.92,
        processing_time=1840,
    )


@pytest.fixture
def mock_supabase() -> MagicMock:
    return MagicMock()
