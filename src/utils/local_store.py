# src/utils/local_store.py
"""
Local document store.

SQLite (through SQLAlchemy) is the system of record for documents, custom
templates and the audit log. Values of sensitive fields are encrypted at rest
with FieldCipher. When hosted sync is enabled, every document write is
mirrored to the Supabase `documents` table; a failed mirror is logged and
never undoes the local write.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import streamlit as st
from pydantic import ValidationError
from sqlalchemy import JSON, DateTime, Float, Integer, String, Text, create_engine, delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from tools.document_schema import (
    DocumentRecord,
    DocumentStatus,
    DocumentTemplate,
    DocumentTypeRef,
    utcnow,
)
from utils import documents_repo
from utils import supabase_utils as cfg
from utils import templates_catalog as catalog
from utils.exceptions import (
    DocumentNotFoundError,
    DocumentValidationError,
    StorageError,
    TemplateError,
)
from utils.logging_config import get_logger
from utils.security import FieldCipher, load_or_create_key

logger = get_logger(__name__)

EXPORT_VERSION = "1.0"
EXPORTED_IMAGE_TYPES = ("logo", "stamp")


class Base(DeclarativeBase):
    pass


class DocumentRow(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type_id: Mapped[str] = mapped_column(String(128), index=True)
    type: Mapped[dict] = mapped_column(JSON)
    template_version: Mapped[str] = mapped_column(String(32), default="v1.0")
    tags: Mapped[list] = mapped_column(JSON, default=list)
    fields: Mapped[dict] = mapped_column(JSON, default=dict)
    ocr_raw_text: Mapped[str] = mapped_column(Text, default="")
    image_url: Mapped[str] = mapped_column(Text, default="")
    created_by: Mapped[str] = mapped_column(String(128), index=True)
    location: Mapped[str] = mapped_column(String(256), index=True)
    status: Mapped[str] = mapped_column(String(16), index=True)
    finalized_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    finalized_on: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    document_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extracted_images: Mapped[list] = mapped_column(JSON, default=list)
    processing_metadata: Mapped[dict] = mapped_column(JSON, default=dict)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TemplateRow(Base):
    __tablename__ = "templates"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), index=True)
    category: Mapped[str] = mapped_column(String(128), index=True)
    template: Mapped[list] = mapped_column(JSON, default=list)
    validation_rules: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class AuditLogRow(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    action: Mapped[str] = mapped_column(String(64), index=True)
    resource: Mapped[str] = mapped_column(String(64))
    resource_id: Mapped[str] = mapped_column(String(128))
    details: Mapped[dict] = mapped_column(JSON, default=dict)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)


@dataclass
class DocumentFilters:
    document_type: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None
    min_confidence: Optional[float] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_status(value: Any, doc_id: Optional[str] = None) -> DocumentStatus:
    try:
        return DocumentStatus(value)
    except ValueError:
        raise DocumentValidationError(
            f"Invalid document status: {value!r}. Expected one of "
            + ", ".join(s.value for s in DocumentStatus),
            doc_id=doc_id,
        )


class LocalDocumentStore:
    def __init__(
        self,
        db_url: str,
        cipher: FieldCipher,
        *,
        supabase_factory: Optional[Callable[[], Any]] = None,
        sync_enabled: bool = False,
    ):
        if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
            Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(db_url, future=True)
        Base.metadata.create_all(self.engine)
        self._session = sessionmaker(self.engine, expire_on_commit=False)
        self.cipher = cipher
        self._supabase_factory = supabase_factory
        self._sync_enabled = sync_enabled and supabase_factory is not None

    # -----------------------------
    # Row <-> model
    # -----------------------------
    def _encrypt_record(self, record: DocumentRecord) -> Dict[str, Any]:
        data = record.model_dump(mode="python")
        data["fields"] = self.cipher.encrypt_fields(data["fields"])
        meta = dict(data.get("metadata") or {})
        if isinstance(meta.get("extracted_fields"), dict):
            meta["extracted_fields"] = self.cipher.encrypt_fields(meta["extracted_fields"])
        data["metadata"] = meta
        return data

    def _row_to_record(self, row: DocumentRow) -> DocumentRecord:
        meta = dict(row.meta or {})
        if isinstance(meta.get("extracted_fields"), dict):
            meta["extracted_fields"] = self.cipher.decrypt_fields(meta["extracted_fields"])
        return DocumentRecord(
            id=row.id,
            type=DocumentTypeRef(**(row.type or {"id": row.type_id, "name": row.type_id})),
            template_version=row.template_version,
            tags=list(row.tags or []),
            fields=self.cipher.decrypt_fields(row.fields),
            ocr_raw_text=row.ocr_raw_text or "",
            image_url=row.image_url or "",
            created_by=row.created_by,
            timestamp=_as_utc(row.timestamp),
            location=row.location,
            status=DocumentStatus(row.status),
            finalized_by=row.finalized_by,
            finalized_on=_as_utc(row.finalized_on),
            confidence=row.confidence or 0.0,
            metadata=meta,
            document_data=row.document_data,
            extracted_images=list(row.extracted_images or []),
            processing_metadata=dict(row.processing_metadata or {}),
        )

    @staticmethod
    def _apply(row: DocumentRow, data: Dict[str, Any]) -> None:
        for key, value in data.items():
            if key == "id":
                continue
            if key == "metadata":
                row.meta = value
            elif key == "type":
                row.type = value
                row.type_id = value["id"]
            elif key == "status":
                row.status = DocumentStatus(value).value
            else:
                setattr(row, key, value)

    @staticmethod
    def _template_from_row(row: TemplateRow) -> DocumentTemplate:
        return DocumentTemplate(
            id=row.id,
            name=row.name,
            category=row.category,
            template=row.template or [],
            validation_rules=row.validation_rules or [],
        )

    # -----------------------------
    # Audit
    # -----------------------------
    def log_action(
        self,
        user_id: str,
        action: str,
        resource: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = documents_repo.to_json_safe(details or {})
        logger.info(action, user_id=user_id, resource=resource, resource_id=resource_id, **details)
        try:
            with self._session.begin() as s:
                s.add(AuditLogRow(
                    user_id=user_id or "unknown",
                    action=action,
                    resource=resource,
                    resource_id=resource_id,
                    details=details,
                ))
        except SQLAlchemyError as e:
            logger.error("audit_log_failed", action=action, error=str(e))

    def get_audit_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        with self._session() as s:
            rows = s.scalars(
                select(AuditLogRow).order_by(AuditLogRow.timestamp.desc(), AuditLogRow.id.desc()).limit(limit)
            ).all()
            return [
                {
                    "id": r.id,
                    "user_id": r.user_id,
                    "action": r.action,
                    "resource": r.resource,
                    "resource_id": r.resource_id,
                    "details": r.details,
                    "timestamp": _as_utc(r.timestamp),
                }
                for r in rows
            ]

    # -----------------------------
    # Hosted sync
    # -----------------------------
    def set_sync_enabled(self, enabled: bool) -> None:
        self._sync_enabled = bool(enabled) and self._supabase_factory is not None
        logger.info("supabase_sync_toggled", enabled=self._sync_enabled)

    def is_sync_enabled(self) -> bool:
        return self._sync_enabled

    def _mirror(self, fn: Callable[[Any], Any], doc_id: str) -> None:
        if not self._sync_enabled:
            return
        try:
            fn(self._supabase_factory())
        except Exception as e:
            logger.warning("supabase_sync_failed", doc_id=doc_id, error=str(e))

    def sync_to_supabase(self) -> Tuple[bool, str]:
        if self._supabase_factory is None:
            return False, "Supabase is not configured"
        if not self._sync_enabled:
            return False, "Supabase sync is disabled"
        docs = self.get_all_documents()
        try:
            documents_repo.upsert_document_rows(self._supabase_factory(), docs)
        except Exception as e:
            logger.error("supabase_sync_failed", error=str(e))
            return False, f"Sync failed: {e}"
        logger.info("supabase_sync_complete", documents=len(docs))
        return True, f"Synced {len(docs)} documents"

    # -----------------------------
    # Documents
    # -----------------------------
    def _ensure_complete(self, record: DocumentRecord) -> None:
        """A finalized record must have every required field of its template filled."""
        if record.status != DocumentStatus.FINALIZED:
            return
        template = self.get_template(record.type.id)
        if template is None:
            return
        missing = catalog.missing_required_fields(template, record.fields)
        if missing:
            raise DocumentValidationError(
                "Required fields are empty: " + ", ".join(missing),
                doc_id=record.id,
                missing_fields=missing,
            )

    def save_document(self, record: DocumentRecord) -> str:
        self._ensure_complete(record)
        data = self._encrypt_record(record)
        row = DocumentRow(id=record.id)
        self._apply(row, data)
        try:
            with self._session.begin() as s:
                s.add(row)
        except IntegrityError as e:
            raise StorageError(
                "Document already exists", {"doc_id": record.id}, original_error=e
            )
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to save document to database", {"doc_id": record.id}, original_error=e
            )

        self.log_action(record.created_by, "document_created", "document", record.id, {
            "documentType": record.type.name,
            "confidence": record.confidence,
            "location": record.location,
        })
        self._mirror(lambda sb: documents_repo.upsert_document_row(sb, record), record.id)
        return record.id

    def get_document(self, doc_id: str) -> Optional[DocumentRecord]:
        with self._session() as s:
            row = s.get(DocumentRow, doc_id)
            return self._row_to_record(row) if row else None

    def get_all_documents(self) -> List[DocumentRecord]:
        with self._session() as s:
            rows = s.scalars(select(DocumentRow).order_by(DocumentRow.timestamp.desc())).all()
            return [self._row_to_record(r) for r in rows]

    def update_document(self, doc_id: str, updates: Dict[str, Any], *, user_id: str = "current_user") -> bool:
        updates = dict(updates)
        updates.pop("id", None)
        if "status" in updates:
            updates["status"] = _coerce_status(updates["status"], doc_id)

        current = self.get_document(doc_id)
        if current is None:
            return False
        try:
            merged = DocumentRecord.model_validate({**current.model_dump(), **updates})
        except ValidationError as e:
            raise DocumentValidationError(f"Invalid document update: {e}", doc_id=doc_id) from e
        self._ensure_complete(merged)

        with self._session.begin() as s:
            row = s.get(DocumentRow, doc_id)
            if row is None:
                return False
            self._apply(row, self._encrypt_record(merged))
            type_name = merged.type.name

        self.log_action(user_id, "document_updated", "document", doc_id, {
            "modifications": sorted(updates.keys()),
            "documentType": type_name,
        })
        self._mirror(lambda sb: documents_repo.upsert_document_row(sb, merged), doc_id)
        return True

    def delete_document(self, doc_id: str, *, user_id: str = "current_user") -> bool:
        with self._session.begin() as s:
            row = s.get(DocumentRow, doc_id)
            if row is None:
                return False
            type_name = (row.type or {}).get("name")
            location = row.location
            s.delete(row)

        self.log_action(user_id, "document_deleted", "document", doc_id, {
            "documentType": type_name,
            "originalLocation": location,
        })
        self._mirror(lambda sb: documents_repo.delete_document_row(sb, doc_id), doc_id)
        return True

    def finalize_document(self, doc_id: str, user_id: str) -> DocumentRecord:
        doc = self.get_document(doc_id)
        if doc is None:
            raise DocumentNotFoundError(doc_id)
        # update_document refuses a finalized record with empty required fields
        self.update_document(doc_id, {
            "status": DocumentStatus.FINALIZED,
            "finalized_by": user_id,
            "finalized_on": utcnow(),
        }, user_id=user_id)
        return self.get_document(doc_id)

    def reject_document(self, doc_id: str, user_id: str, reason: Optional[str] = None) -> DocumentRecord:
        doc = self.get_document(doc_id)
        if doc is None:
            raise DocumentNotFoundError(doc_id)
        meta = dict(doc.metadata)
        meta["rejection"] = {"by": user_id, "reason": reason or "", "on": utcnow().isoformat()}
        self.update_document(doc_id, {"status": DocumentStatus.REJECTED, "metadata": meta}, user_id=user_id)
        return self.get_document(doc_id)

    # -----------------------------
    # Templates
    # -----------------------------
    def _stored_templates(self) -> List[DocumentTemplate]:
        with self._session() as s:
            rows = s.scalars(select(TemplateRow).order_by(TemplateRow.name)).all()
            return [self._template_from_row(r) for r in rows]

    def save_template(self, template: DocumentTemplate, *, user_id: str = "current_user") -> str:
        row = TemplateRow(
            id=template.id,
            name=template.name,
            category=template.category,
            template=[f.model_dump() for f in template.template],
            validation_rules=list(template.validation_rules),
        )
        try:
            with self._session.begin() as s:
                s.add(row)
        except IntegrityError as e:
            raise TemplateError("Template already exists", template.id) from e
        except SQLAlchemyError as e:
            raise TemplateError("Failed to save template to database", template.id) from e

        self.log_action(user_id, "template_created", "template", template.id, {
            "templateName": template.name,
            "category": template.category,
            "fieldsCount": len(template.template),
        })
        return template.id

    def get_template(self, template_id: str) -> Optional[DocumentTemplate]:
        with self._session() as s:
            row = s.get(TemplateRow, template_id)
            if row is not None:
                return self._template_from_row(row)
        return catalog.get_built_in(template_id)

    def get_all_templates(self) -> List[DocumentTemplate]:
        try:
            return catalog.merge_templates(self._stored_templates())
        except SQLAlchemyError as e:
            logger.error("templates_load_failed", error=str(e))
            return catalog.built_in_templates()

    def update_template(self, template_id: str, updates: Dict[str, Any], *, user_id: str = "current_user") -> bool:
        current = self.get_template(template_id)
        if current is None:
            return False
        updates = {k: v for k, v in updates.items() if k != "id"}
        merged = DocumentTemplate.model_validate({**current.model_dump(), **updates})

        with self._session.begin() as s:
            row = s.get(TemplateRow, template_id)
            if row is None:
                # first edit of a built-in: store it as an override
                row = TemplateRow(id=template_id)
                s.add(row)
            row.name = merged.name
            row.category = merged.category
            row.template = [f.model_dump() for f in merged.template]
            row.validation_rules = list(merged.validation_rules)

        self.log_action(user_id, "template_updated", "template", template_id, {
            "modifications": sorted(updates.keys()),
            "templateName": merged.name,
        })
        return True

    def delete_template(self, template_id: str, *, user_id: str = "current_user") -> bool:
        with self._session.begin() as s:
            row = s.get(TemplateRow, template_id)
            if row is None:
                if catalog.is_built_in(template_id):
                    raise TemplateError("Built-in templates cannot be deleted", template_id)
                return False
            name, category = row.name, row.category
            s.delete(row)

        self.log_action(user_id, "template_deleted", "template", template_id, {
            "templateName": name,
            "category": category,
            "restoredBuiltIn": catalog.is_built_in(template_id),
        })
        return True

    def get_templates_by_category(self, category: str) -> List[DocumentTemplate]:
        return [t for t in self.get_all_templates() if t.category == category]

    def search_templates(self, query: str | None) -> List[DocumentTemplate]:
        return catalog.search_templates(self.get_all_templates(), query)

    # -----------------------------
    # Search
    # -----------------------------
    def search_documents(self, query: str | None = None, filters: Optional[DocumentFilters] = None) -> List[DocumentRecord]:
        stmt = select(DocumentRow).order_by(DocumentRow.timestamp.desc())
        if filters:
            if filters.document_type:
                stmt = stmt.where(DocumentRow.type_id == filters.document_type)
            if filters.status:
                stmt = stmt.where(DocumentRow.status == _coerce_status(filters.status).value)
            if filters.location:
                stmt = stmt.where(DocumentRow.location == filters.location)
            if filters.min_confidence:
                stmt = stmt.where(DocumentRow.confidence >= filters.min_confidence)

        with self._session() as s:
            docs = [self._row_to_record(r) for r in s.scalars(stmt).all()]

        if filters and (filters.date_from or filters.date_to):
            start = _as_utc(filters.date_from)
            end = _as_utc(filters.date_to)
            docs = [
                d for d in docs
                if (start is None or d.timestamp >= start) and (end is None or d.timestamp <= end)
            ]

        if not query:
            return docs
        q = query.lower()
        return [
            d for d in docs
            if q in " ".join([
                d.ocr_raw_text,
                json.dumps(d.fields, ensure_ascii=False, default=str),
                d.type.name,
                d.location,
            ]).lower()
        ]

    # -----------------------------
    # Statistics
    # -----------------------------
    def get_document_statistics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        docs = self.get_all_documents()
        now = _as_utc(now) or utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        by_type: Dict[str, int] = {}
        by_status: Dict[str, int] = {}
        this_month = 0
        for d in docs:
            by_type[d.type.name] = by_type.get(d.type.name, 0) + 1
            by_status[d.status.value] = by_status.get(d.status.value, 0) + 1
            if d.timestamp >= month_start:
                this_month += 1

        return {
            "total_documents": len(docs),
            "documents_by_type": by_type,
            "documents_by_status": by_status,
            "average_confidence": (sum(d.confidence for d in docs) / len(docs)) if docs else 0.0,
            "documents_this_month": this_month,
        }

    def get_template_statistics(self) -> Dict[str, Any]:
        return catalog.template_statistics(self.get_all_templates())

    # -----------------------------
    # Export / maintenance
    # -----------------------------
    def export_documents(self) -> str:
        documents = []
        for d in self.get_all_documents():
            doc = documents_repo.to_json_safe(d)
            doc.pop("document_data", None)
            for img in doc.get("extracted_images") or []:
                if img.get("type") not in EXPORTED_IMAGE_TYPES:
                    img["base64_data"] = None
            documents.append(doc)
        return json.dumps(
            {"exportDate": utcnow().isoformat(), "version": EXPORT_VERSION, "documents": documents},
            indent=2,
            ensure_ascii=False,
        )

    def export_templates(self) -> str:
        return json.dumps(
            {
                "exportDate": utcnow().isoformat(),
                "version": EXPORT_VERSION,
                "templates": [t.model_dump() for t in self.get_all_templates()],
            },
            indent=2,
            ensure_ascii=False,
        )

    def clear_database(self) -> None:
        try:
            with self._session.begin() as s:
                s.execute(delete(DocumentRow))
                s.execute(delete(TemplateRow))
                s.execute(delete(AuditLogRow))
        except SQLAlchemyError as e:
            raise StorageError("Failed to clear database", original_error=e)
        logger.info("database_cleared")


@st.cache_resource(show_spinner=False)
def get_document_store() -> LocalDocumentStore:
    """Process-wide store built from secrets/env."""
    db_url = cfg.get_local_db_url()
    key = cfg.get_encryption_key() or load_or_create_key(cfg.get_key_path(db_url))
    factory = cfg.get_supabase_client if cfg.supabase_configured() else None
    return LocalDocumentStore(
        db_url,
        FieldCipher(key),
        supabase_factory=factory,
        sync_enabled=cfg.is_sync_enabled(),
    )
