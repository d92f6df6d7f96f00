"""
Unit Tests - QR Upload Sessions
===============================
Session lifecycle with a controllable clock, uploads against a mocked
Supabase client.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from tools.document_schema import ExtractionResult
from utils.exceptions import UploadError, UploadSessionError
from utils.upload_sessions import MAX_FILE_SIZE, QRUploadService, sanitize_file_name

START = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(START)


@pytest.fixture
def service(mock_supabase, clock):
    storage = mock_supabase.storage.from_.return_value
    storage.get_public_url.return_value = "https://sb.example/storage/v1/object/public/uploads/x.png"
    mock_supabase.table.return_value.insert.return_value.execute.return_value = MagicMock(
        data=[{"id": 41, "created_at": "2026-01-15T09:00:00+00:00"}]
    )
    return QRUploadService(mock_supabase, bucket="uploads", clock=clock, default_hours=24)


class TestSessions:

    @pytest.mark.unit
    def test_create_and_validate(self, service):
        sid = service.create_upload_session("pc1")
        assert sid.startswith("session_")
        assert service.validate_session(sid)
        assert service.get_session(sid).expires_at == START + timedelta(hours=24)

    @pytest.mark.unit
    def test_unknown_session(self, service):
        assert service.validate_session("session_0_nope") is False

    @pytest.mark.unit
    def test_expired_session_is_removed(self, service, clock):
        sid = service.create_upload_session("pc1", expiration_hours=1)
        clock.now = START + timedelta(hours=1, seconds=1)

        assert service.validate_session(sid) is False
        assert service.get_session(sid) is None

    @pytest.mark.unit
    def test_revoke(self, service):
        sid = service.create_upload_session("pc1")
        assert service.revoke_session(sid) is True
        assert service.validate_session(sid) is False
        assert service.revoke_session("session_0_nope") is False

    @pytest.mark.unit
    def test_cleanup_and_active(self, service, clock):
        short = service.create_upload_session("pc1", expiration_hours=1)
        long = service.create_upload_session("pc1", expiration_hours=8)
        other = service.create_upload_session("si7", expiration_hours=8)
        clock.now = START + timedelta(hours=2)

        assert [s.session_id for s in service.active_sessions("pc1")] == [long]
        assert {s.session_id for s in service.active_sessions()} == {long, other}
        assert service.cleanup_expired_sessions() == 1
        assert service.get_session(short) is None


class TestUpload:

    @pytest.mark.unit
    def test_upload_stores_file_and_row(self, service, mock_supabase):
        sid = service.create_upload_session("pc1")
        result = service.upload_file(sid, b"\x89PNG", "my scan (1).png", "image/png")

        mock_supabase.storage.from_.assert_called_with("uploads")
        upload_kwargs = mock_supabase.storage.from_.return_value.upload.call_args.kwargs
        expected_path = f"uploads/{sid}/{int(START.timestamp() * 1000)}_my_scan__1_.png"
        assert upload_kwargs["path"] == expected_path
        assert upload_kwargs["file"] == b"\x89PNG"
        assert upload_kwargs["file_options"] == {"content-type": "image/png", "cache-control": "3600", "upsert": "false"}

        row = mock_supabase.table.return_value.insert.call_args.args[0]
        assert row["session_id"] == sid
        assert row["file_name"] == "my scan (1).png"
        assert row["file_size"] == 4
        assert row["uploaded_by"] == "pc1"
        assert row["processed"] is False

        assert result.id == "41"
        assert result.file_path == expected_path
        assert result.file_url.endswith("x.png")

    @pytest.mark.unit
    def test_invalid_session_rejected(self, service, mock_supabase):
        with pytest.raises(UploadSessionError):
            service.upload_file("session_0_nope", b"x", "a.png", "image/png")
        mock_supabase.storage.from_.return_value.upload.assert_not_called()

    @pytest.mark.unit
    def test_wrong_type_rejected(self, service):
        sid = service.create_upload_session("pc1")
        with pytest.raises(UploadError, match="Invalid file type"):
            service.upload_file(sid, b"x", "a.gif", "image/gif")

    @pytest.mark.unit
    def test_large_file_rejected(self, service):
        sid = service.create_upload_session("pc1")
        with pytest.raises(UploadError, match="10MB"):
            service.upload_file(sid, b"x" * (MAX_FILE_SIZE + 1), "big.pdf", "application/pdf")

    @pytest.mark.unit
    def test_storage_failure_wrapped(self, service, mock_supabase):
        sid = service.create_upload_session("pc1")
        mock_supabase.storage.from_.return_value.upload.side_effect = RuntimeError("bucket not found")
        with pytest.raises(UploadError) as exc_info:
            service.upload_file(sid, b"x", "a.png", "image/png")
        assert "bucket not found" in exc_info.value.message

    @pytest.mark.unit
    @pytest.mark.parametrize("name,expected", [
        ("leave letter.jpg", "leave_letter.jpg"),
        ("../../etc/passwd", "passwd"),
        ("C:\\scans\\form.pdf", "form.pdf"),
        ("", "upload"),
    ])
    def test_sanitize(self, name, expected):
        assert sanitize_file_name(name) == expected


class TestListing:

    @pytest.mark.unit
    def test_session_uploads_newest_first(self, service, mock_supabase):
        rows = [{"id": 2}, {"id": 1}]
        query = mock_supabase.table.return_value.select.return_value.eq.return_value
        query.order.return_value.execute.return_value = MagicMock(data=rows)

        assert service.get_session_uploads("s1") == rows
        query.order.assert_called_with("created_at", desc=True)

    @pytest.mark.unit
    def test_listing_errors_return_empty(self, service, mock_supabase):
        mock_supabase.table.side_effect = ConnectionError("offline")
        assert service.get_session_uploads("s1") == []
        assert service.poll_new_uploads("s1", "cursor") == ([], "cursor")

    @pytest.mark.unit
    def test_poll_advances_cursor(self, service, mock_supabase):
        rows = [{"id": 1, "created_at": "2026-01-15T09:01:00"}, {"id": 2, "created_at": "2026-01-15T09:02:00"}]
        query = mock_supabase.table.return_value.select.return_value.eq.return_value
        query.gte.return_value.order.return_value.execute.return_value = MagicMock(data=rows)

        found, cursor = service.poll_new_uploads("s1", "2026-01-15T09:00:00")
        query.gte.assert_called_with("created_at", "2026-01-15T09:00:00")
        assert found == rows
        assert cursor == "2026-01-15T09:02:00"

    @pytest.mark.unit
    def test_poll_returns_rows_sharing_cursor_timestamp(self, service, mock_supabase):
        stamp = "2026-01-15T09:02:00"
        first = {"id": 1, "created_at": stamp}
        twin = {"id": 2, "created_at": stamp}
        query = mock_supabase.table.return_value.select.return_value.eq.return_value
        query.gte.return_value.order.return_value.execute.return_value = MagicMock(data=[first, twin])

        found, cursor = service.poll_new_uploads("s1", stamp)

        assert [r["id"] for r in found] == [1, 2]
        assert cursor == stamp

    @pytest.mark.unit
    def test_poll_without_news_keeps_cursor(self, service, mock_supabase):
        query = mock_supabase.table.return_value.select.return_value.eq.return_value
        query.order.return_value.execute.return_value = MagicMock(data=[])
        assert service.poll_new_uploads("s1") == ([], None)


class TestProcessing:

    @pytest.fixture
    def stored_row(self, mock_supabase):
        row = {"id": 41, "file_path": "uploads/s1/1_leave.jpg", "file_name": "leave.jpg", "file_type": "image/jpeg"}
        query = mock_supabase.table.return_value.select.return_value.eq.return_value
        query.limit.return_value.execute.return_value = MagicMock(data=[row])
        mock_supabase.storage.from_.return_value.download.return_value = b"jpeg-bytes"
        return row

    @pytest.mark.unit
    def test_process_runs_parser_and_marks_row(self, service, mock_supabase, stored_row):
        parser = MagicMock(return_value=ExtractionResult(
            document_type="Earned Leave",
            confidence=0.85,
            processing_time=900,
            extracted_data={"Document Type": "Earned Leave", "Solution": {"Name": "K. Ramesh"}},
        ))

        result = service.process_uploaded_document(41, "pc1", parser=parser)

        mock_supabase.storage.from_.return_value.download.assert_called_with("uploads/s1/1_leave.jpg")
        parser.assert_called_once_with(
            file_bytes=b"jpeg-bytes", filename="leave.jpg", mime_type="image/jpeg", user_id="pc1",
        )
        update = mock_supabase.table.return_value.update.call_args.args[0]
        assert update["processed"] is True
        assert update["processing_metadata"]["document_type"] == "Earned Leave"
        assert update["processing_metadata"]["processed_at"] == START.isoformat()
        assert update["processing_metadata"]["extracted_data"]["Solution"] == {"Name": "K. Ramesh"}
        assert result.confidence == 0.85

    @pytest.mark.unit
    def test_download_failure_raises_upload_error(self, service, mock_supabase, stored_row):
        mock_supabase.storage.from_.return_value.download.side_effect = RuntimeError("object not found")
        parser = MagicMock()

        with pytest.raises(UploadError) as exc_info:
            service.process_uploaded_document(41, "pc1", parser=parser)

        assert exc_info.value.message == "File download failed: object not found"
        assert isinstance(exc_info.value.original_error, RuntimeError)
        parser.assert_not_called()

    @pytest.mark.unit
    def test_lookup_failure_raises_upload_error(self, service, mock_supabase):
        mock_supabase.table.side_effect = ConnectionError("offline")
        with pytest.raises(UploadError, match="offline"):
            service.process_uploaded_document(41, "pc1", parser=MagicMock())

    @pytest.mark.unit
    def test_mark_processed_failure_is_not_fatal(self, service, mock_supabase, stored_row):
        mock_supabase.table.return_value.update.side_effect = ConnectionError("offline")
        parser = MagicMock(return_value=ExtractionResult(document_type="Earned Leave"))
        assert service.process_uploaded_document(41, "pc1", parser=parser).document_type == "Earned Leave"

    @pytest.mark.unit
    def test_unknown_file(self, service, mock_supabase):
        query = mock_supabase.table.return_value.select.return_value.eq.return_value
        query.limit.return_value.execute.return_value = MagicMock(data=[])
        with pytest.raises(UploadError):
            service.process_uploaded_document(99, "pc1", parser=MagicMock())
