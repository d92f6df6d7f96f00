# src/utils/upload_sessions.py
"""
Phone-as-scanner upload sessions.

A desktop page opens a session and shows its QR code; the phone posts files
into that session, which land in the Supabase storage bucket and in the
`uploads` table. The desktop page watches the table for new rows.

Sessions live in process memory only, so they do not survive a restart.
"""
from __future__ import annotations

import re
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import streamlit as st

from tools.document_schema import ExtractionResult, FileUploadResult, UploadSession, new_id, utcnow
from utils.documents_repo import to_json_safe
from utils.exceptions import UploadError, UploadSessionError
from utils.logging_config import get_logger
from utils import supabase_utils as cfg

logger = get_logger(__name__)

UPLOADS_TABLE = "uploads"
ALLOWED_TYPES = ("image/jpeg", "image/png", "image/jpg", "application/pdf")
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB


def sanitize_file_name(name: str) -> str:
    base = (name or "").strip().replace("\\", "/").rsplit("/", 1)[-1]
    clean = re.sub(r"[^a-zA-Z0-9._-]", "_", base).strip("._")
    return clean or "upload"


class QRUploadService:
    def __init__(
        self,
        supabase=None,
        *,
        bucket: Optional[str] = None,
        table: str = UPLOADS_TABLE,
        clock: Optional[Callable[[], datetime]] = None,
        default_hours: Optional[int] = None,
    ):
        # `supabase` may be a client or a zero-arg factory returning one
        self._supabase = supabase
        self.bucket = bucket or cfg.get_upload_bucket()
        self.table = table
        self.clock = clock or utcnow
        self.default_hours = default_hours or cfg.get_session_hours()
        self._sessions: Dict[str, UploadSession] = {}
        self._lock = threading.Lock()

    @property
    def supabase(self):
        if self._supabase is None:
            self._supabase = cfg.get_supabase_client()
        elif callable(self._supabase) and not hasattr(self._supabase, "table"):
            self._supabase = self._supabase()
        return self._supabase

    # ----------------- sessions -----------------
    def create_upload_session(self, user_id: str, expiration_hours: Optional[int] = None) -> str:
        hours = expiration_hours or self.default_hours
        session = UploadSession(
            session_id=new_id("session"),
            user_id=user_id,
            expires_at=self.clock() + timedelta(hours=hours),
        )
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info("upload_session_created", session_id=session.session_id, user_id=user_id, hours=hours)
        return session.session_id

    def get_session(self, session_id: str) -> Optional[UploadSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def validate_session(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if session.is_expired(self.clock()):
                del self._sessions[session_id]
                logger.info("upload_session_expired", session_id=session_id)
                return False
            return session.active

    def revoke_session(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.active = False
        logger.info("upload_session_revoked", session_id=session_id)
        return True

    def cleanup_expired_sessions(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info("upload_sessions_cleaned", count=len(expired))
        return len(expired)

    def active_sessions(self, user_id: Optional[str] = None) -> List[UploadSession]:
        now = self.clock()
        with self._lock:
            sessions = [
                s for s in self._sessions.values()
                if s.active and not s.is_expired(now) and (user_id is None or s.user_id == user_id)
            ]
        return sorted(sessions, key=lambda s: s.expires_at, reverse=True)

    # ----------------- files -----------------
    def upload_file(
        self,
        session_id: str,
        file_bytes: bytes,
        file_name: str,
        file_type: str,
        uploaded_by: Optional[str] = None,
    ) -> FileUploadResult:
        if not self.validate_session(session_id):
            raise UploadSessionError(session_id=session_id)
        if file_type not in ALLOWED_TYPES:
            raise UploadError(
                "Invalid file type. Please upload JPEG, PNG, or PDF files.", file_name=file_name
            )
        if len(file_bytes) > MAX_FILE_SIZE:
            raise UploadError("File size too large. Maximum size is 10MB.", file_name=file_name)

        now = self.clock()
        millis = int(now.timestamp() * 1000)
        file_path = f"uploads/{session_id}/{millis}_{sanitize_file_name(file_name)}"

        try:
            storage = self.supabase.storage.from_(self.bucket)
            storage.upload(
                path=file_path,
                file=file_bytes,
                file_options={"content-type": file_type, "cache-control": "3600", "upsert": "false"},
            )
            file_url = storage.get_public_url(file_path)

            session = self.get_session(session_id)
            insert_res = (
                self.supabase.table(self.table)
                .insert(
                    {
                        "session_id": session_id,
                        "file_name": file_name,
                        "file_path": file_path,
                        "file_size": len(file_bytes),
                        "file_type": file_type,
                        "uploaded_by": uploaded_by or (session.user_id if session else "anonymous"),
                        "processed": False,
                        "created_at": now.isoformat(),
                    }
                )
                .execute()
            )
        except Exception as e:
            logger.error("file_upload_failed", session_id=session_id, file_name=file_name, error=str(e))
            raise UploadError(f"Upload failed: {e}", file_name=file_name, original_error=e) from e

        row = (getattr(insert_res, "data", None) or [{}])[0]
        logger.info("file_uploaded", session_id=session_id, file_path=file_path, size=len(file_bytes))
        return FileUploadResult(
            id=str(row.get("id", "")),
            file_name=file_name,
            file_path=file_path,
            file_url=file_url,
            uploaded_at=row.get("created_at") or now.isoformat(),
        )

    def get_session_uploads(self, session_id: str) -> List[Dict[str, Any]]:
        try:
            res = (
                self.supabase.table(self.table)
                .select("*")
                .eq("session_id", session_id)
                .order("created_at", desc=True)
                .execute()
            )
            return getattr(res, "data", None) or []
        except Exception as e:
            logger.warning("session_uploads_fetch_failed", session_id=session_id, error=str(e))
            return []

    def poll_new_uploads(
        self, session_id: str, since: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        Rows created at or after `since` (oldest first) and the cursor for the next poll.

        Rows sharing the cursor timestamp come back again on the next poll;
        callers de-duplicate by id.
        """
        try:
            query = self.supabase.table(self.table).select("*").eq("session_id", session_id)
            if since:
                query = query.gte("created_at", since)
            res = query.order("created_at").execute()
            rows = getattr(res, "data", None) or []
        except Exception as e:
            logger.warning("upload_poll_failed", session_id=session_id, error=str(e))
            return [], since
        cursor = rows[-1].get("created_at", since) if rows else since
        return rows, cursor

    def process_uploaded_document(
        self,
        file_id: str,
        user_id: str,
        parser: Optional[Callable[..., ExtractionResult]] = None,
    ) -> ExtractionResult:
        try:
            res = self.supabase.table(self.table).select("*").eq("id", file_id).limit(1).execute()
            rows = getattr(res, "data", None) or []
        except Exception as e:
            logger.error("upload_lookup_failed", file_id=file_id, error=str(e))
            raise UploadError(f"File lookup failed: {e}", file_name=file_id, original_error=e) from e
        if not rows:
            raise UploadError("File not found", file_name=file_id)
        row = rows[0]

        try:
            file_bytes = self.supabase.storage.from_(self.bucket).download(row["file_path"])
        except Exception as e:
            logger.error("upload_download_failed", file_id=file_id, path=row.get("file_path"), error=str(e))
            raise UploadError(
                f"File download failed: {e}", file_name=row.get("file_name"), original_error=e
            ) from e

        if parser is None:
            # imported here so the upload pages load without the model stack
            from agents.document_parser.agent import parse_document as parser

        result = parser(
            file_bytes=file_bytes,
            filename=row.get("file_name") or row["file_path"].rsplit("/", 1)[-1],
            mime_type=row.get("file_type"),
            user_id=user_id,
        )

        try:
            (
                self.supabase.table(self.table)
                .update(
                    {
                        "processed": True,
                        "processing_metadata": to_json_safe(
                            {
                                "document_type": result.document_type,
                                "confidence": result.confidence,
                                "processing_time": result.processing_time,
                                "extracted_data": result.extracted_data,
                                "processed_by": user_id,
                                "processed_at": self.clock(),
                            }
                        ),
                    }
                )
                .eq("id", file_id)
                .execute()
            )
        except Exception as e:
            logger.warning("upload_mark_processed_failed", file_id=file_id, error=str(e))

        logger.info("upload_processed", file_id=file_id, document_type=result.document_type)
        return result


@st.cache_resource
def get_qr_upload_service() -> QRUploadService:
    """One registry per server process, shared by the QR and mobile pages."""
    return QRUploadService(cfg.get_supabase_client)
