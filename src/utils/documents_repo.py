# src/utils/documents_repo.py
from __future__ import annotations

from typing import Any, Dict, Optional, Iterable, List
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal
from enum import Enum
import dataclasses, json, re
from collections import deque

from pydantic import BaseModel

from tools.document_schema import (
    DocumentRecord,
    DocumentStatus,
    DocumentTemplate,
    ExtractionResult,
)
from utils.logging_config import get_logger

logger = get_logger(__name__)

DOCUMENTS_TABLE = "documents"


# ---------- JSON safety ----------
def to_json_safe(obj: Any):
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, BaseModel):
        return to_json_safe(obj.model_dump())
    if isinstance(obj, dict):
        return {str(k): to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(x) for x in obj]
    if dataclasses.is_dataclass(obj):
        return to_json_safe(dataclasses.asdict(obj))
    try:
        json.dumps(obj)
        return obj
    except (TypeError, ValueError):
        return str(obj)


# ---------- helpers ----------
def _coalesce(*vals):
    for v in vals:
        if v is not None and str(v).strip().lower() not in ("", "null", "none"):
            return v
    return None

def _norm_key(k: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(k).lower())

def _dict_ci_get(d: Dict[str, Any], keys: Iterable[str]) -> Optional[Any]:
    if not isinstance(d, dict):
        return None
    lower_map = {_norm_key(k): k for k in d.keys()}
    for k in keys:
        lk = _norm_key(k)
        if lk in lower_map:
            return d[lower_map[lk]]
    return None

def _deep_find(obj: Any, keys: Iterable[str]) -> Optional[Any]:
    if obj is None:
        return None
    keyset = {_norm_key(k) for k in keys}
    q = deque([obj])
    while q:
        cur = q.popleft()
        if isinstance(cur, dict):
            for k, v in cur.items():
                if _norm_key(k) in keyset:
                    return v
            for v in cur.values():
                if isinstance(v, (dict, list, tuple)):
                    q.append(v)
        elif isinstance(cur, (list, tuple)):
            for v in cur:
                if isinstance(v, (dict, list, tuple)):
                    q.append(v)
    return None


def flatten_extraction(data: Any, prefix: str = "") -> Dict[str, Any]:
    """
    {"Reporting Officer": {"Name": "X"}} -> {"Reporting Officer / Name": "X"}

    Lists of scalars are joined with ", "; lists of objects are kept as JSON text.
    """
    out: Dict[str, Any] = {}
    if not isinstance(data, dict):
        return out
    for k, v in data.items():
        key = f"{prefix} / {k}" if prefix else str(k)
        if isinstance(v, dict):
            out.update(flatten_extraction(v, key))
        elif isinstance(v, (list, tuple)):
            if all(not isinstance(x, (dict, list, tuple)) for x in v):
                out[key] = ", ".join(str(x) for x in v if _coalesce(x) is not None)
            else:
                out[key] = json.dumps(to_json_safe(v), ensure_ascii=False)
        else:
            out[key] = "" if v is None else v
    return out


# ---------- normalization ----------
def normalize_extraction(payload: Dict[str, Any]) -> Dict[str, Any]:
    # locate root (Document Type / Solution), even if wrapped
    root = payload if isinstance(payload, dict) else {}
    if _dict_ci_get(root, ["solution", "document type"]) is None:
        wrapper = _dict_ci_get(root, ["result", "output", "data", "response"])
        if isinstance(wrapper, dict):
            root = wrapper

    solution = _dict_ci_get(root, ["solution"])
    if solution is None:
        solution = _deep_find(root, ["solution"])
    if not isinstance(solution, dict):
        solution = {}

    stamp = _dict_ci_get(root, ["stamp", "stamps and signatures"])
    signature = _dict_ci_get(root, ["signature"])
    if signature is None:
        signature = _deep_find(stamp, ["signature"])

    return {
        "document_type": _coalesce(_dict_ci_get(root, ["document type", "document_type"])),
        "document_status": _coalesce(_dict_ci_get(root, ["document status", "document_status"])),
        "solution": solution,
        "stamp": stamp,
        "signature": signature,
    }


# VLM reply keys -> template field ids, per built-in template
FIELD_ALIASES: Dict[str, Dict[str, str]] = {
    "earned_leave": {
        "Name": "applicantName",
        "Date": "applicationDate",
        "Number of Days": "duration",
        "Leave From Date": "startDate",
        "Leave To Date": "endDate",
        "Leave Reason": "reason",
    },
    "medical_leave": {
        "Name": "patientName",
        "Date of Submission": "applicationDate",
        "Rank": "designation",
        "Coy Belongs to": "department",
        "Leave Reason": "medicalCondition",
    },
    "probation_letter": {
        "Name of Probationer": "employeeName",
        "Date of Regularization": "probationStartDate",
        "Date of completion of probation": "probationEndDate",
        "Period of Probation Prescribed": "probationPeriod",
        "Character and Conduct": "evaluationCriteria",
        "Reporting Officer / Name": "supervisorName",
        "Reporting Officer / Designation": "position",
    },
    "punishment_letter": {
        "Order_date": "effectiveDate",
        "Punishment_awarded": "punishmentType",
        "Deliquency_Description": "incidentDescription",
        "Issued By": "issuingAuthority",
    },
    "reward_letter": {
        "Date": "awardDate",
        "Issued By": "issuingAuthority",
        "Reason for Reward": "citation",
        "Subject": "achievementDescription",
    },
}


def map_to_template_fields(template: DocumentTemplate, flat: Dict[str, Any]) -> Dict[str, Any]:
    """Every template field id gets a value ("" when the model did not find one)."""
    fields: Dict[str, Any] = {f.id: "" for f in template.template}
    by_norm = {}
    for f in template.template:
        by_norm[_norm_key(f.id)] = f.id
        by_norm[_norm_key(f.label)] = f.id
    aliases = {_norm_key(k): v for k, v in FIELD_ALIASES.get(template.id, {}).items()}

    for key, value in flat.items():
        if _coalesce(value) is None:
            continue
        nk = _norm_key(key)
        target = aliases.get(nk) or by_norm.get(nk)
        if target and fields.get(target) in ("", None):
            fields[target] = value
    return fields


def build_document_record(
    result: ExtractionResult,
    *,
    template: DocumentTemplate,
    created_by: str,
    location: str,
    image_url: str = "",
    document_data: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> DocumentRecord:
    norm = normalize_extraction(result.extracted_data)
    flat = flatten_extraction(norm["solution"]) if norm["solution"] else flatten_extraction(result.extracted_data)

    processing: Dict[str, Any] = {"processing_time_ms": result.processing_time}
    if result.stamp_verification:
        processing["stamp_verification"] = result.stamp_verification.model_dump()
    if result.signature_verification:
        processing["signature_verification"] = result.signature_verification.model_dump()

    return DocumentRecord(
        type=template.ref(),
        tags=tags or [],
        fields=map_to_template_fields(template, flat),
        ocr_raw_text=result.extracted_text,
        image_url=image_url,
        created_by=created_by,
        location=location,
        status=DocumentStatus.PENDING,
        confidence=result.confidence,
        metadata={
            "detected_document_type": result.document_type,
            "reported_status": norm["document_status"],
            "extracted_fields": flat,
        },
        document_data=document_data,
        processing_metadata=processing,
    )


# ---------- hosted documents table ----------
def to_supabase_row(record: DocumentRecord) -> Dict[str, Any]:
    """Column layout of the hosted `documents` table."""
    doc = to_json_safe(record)
    return {
        "id": doc["id"],
        "type": doc["type"],
        "template_version": doc["template_version"],
        "tags": doc["tags"],
        "fields": doc["fields"],
        "ocr_raw_text": doc["ocr_raw_text"],
        "image_url": doc["image_url"],
        "created_by": doc["created_by"],
        "location": doc["location"],
        "status": doc["status"],
        "confidence": doc["confidence"],
        "timestamp": doc["timestamp"],
        "document_data": doc["document_data"] or "",
        "extracted_images": doc["extracted_images"],
        "processing_metadata": doc["processing_metadata"],
        "metadata": {
            **doc["metadata"],
            "finalized_by": doc["finalized_by"],
            "finalized_on": doc["finalized_on"],
        },
    }


def upsert_document_row(supabase, record: DocumentRecord):
    return supabase.table(DOCUMENTS_TABLE).upsert(to_supabase_row(record), on_conflict="id").execute()


def upsert_document_rows(supabase, records: Iterable[DocumentRecord]):
    rows = [to_supabase_row(r) for r in records]
    if not rows:
        return None
    return supabase.table(DOCUMENTS_TABLE).upsert(rows, on_conflict="id").execute()


def delete_document_row(supabase, doc_id: str):
    return supabase.table(DOCUMENTS_TABLE).delete().eq("id", doc_id).execute()
