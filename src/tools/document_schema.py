from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

FieldType = Literal["text", "select", "date", "number", "textarea"]
ImageType = Literal["logo", "stamp", "signature", "photo", "diagram"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """e.g. doc_1719571200000_k3j9x0q1z"""
    millis = int(utcnow().timestamp() * 1000)
    return f"{prefix}_{millis}_{uuid.uuid4().hex[:9]}"


class TemplateField(BaseModel):
    id: str
    label: str
    type: FieldType = "text"
    required: bool = False
    options: Optional[List[str]] = None  # only for type == "select"


class DocumentTemplate(BaseModel):
    id: str
    name: str
    category: str
    template: List[TemplateField] = Field(default_factory=list)
    validation_rules: List[Dict[str, Any]] = Field(default_factory=list)

    def field_ids(self) -> List[str]:
        return [f.id for f in self.template]

    def ref(self) -> "DocumentTypeRef":
        return DocumentTypeRef(id=self.id, name=self.name, category=self.category)


class DocumentTypeRef(BaseModel):
    id: str
    name: str
    category: str = ""


class DocumentStatus(str, Enum):
    PENDING = "pending"
    FINALIZED = "finalized"
    REJECTED = "rejected"


class BoundingBox(BaseModel):
    x: float
    y: float
    width: float
    height: float


class ExtractedImage(BaseModel):
    id: str
    type: ImageType
    base64_data: Optional[str] = None
    bbox: Optional[BoundingBox] = None
    confidence: float = 0.0
    description: Optional[str] = None


class DocumentRecord(BaseModel):
    id: str = Field(default_factory=lambda: new_id("doc"))
    type: DocumentTypeRef
    template_version: str = "v1.0"
    tags: List[str] = Field(default_factory=list)
    fields: Dict[str, Any] = Field(default_factory=dict)
    ocr_raw_text: str = ""
    image_url: str = ""
    created_by: str
    timestamp: datetime = Field(default_factory=utcnow)
    location: str
    status: DocumentStatus = DocumentStatus.PENDING
    finalized_by: Optional[str] = None
    finalized_on: Optional[datetime] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    document_data: Optional[str] = None  # base64 original, kept out of exports
    extracted_images: List[ExtractedImage] = Field(default_factory=list)
    processing_metadata: Dict[str, Any] = Field(default_factory=dict)


class MarkVerification(BaseModel):
    is_present: bool = False
    confidence: float = 0.0
    matched_reference: Optional[str] = None
    bounding_box: Optional[BoundingBox] = None
    image_data: Optional[str] = None


class ExtractionResult(BaseModel):
    extracted_text: str = ""
    document_type: str = "Unknown"
    extracted_data: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.0
    processing_time: int = 0  # milliseconds
    stamp_verification: Optional[MarkVerification] = None
    signature_verification: Optional[MarkVerification] = None


class UploadSession(BaseModel):
    session_id: str
    user_id: str
    expires_at: datetime
    active: bool = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at


class FileUploadResult(BaseModel):
    id: str
    file_name: str
    file_path: str
    file_url: str
    uploaded_at: Optional[str] = None
