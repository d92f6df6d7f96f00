"""
Stamp and signature checks on the structured model output.

The model reports what it read inside stamp areas ("Stamp Validation") and
next to signatures ("Name (if written)" / "Date (if written)"). A stamp is
matched to a reference stamp by word overlap with the reference names and
descriptions; a signature bounding box, when one is known, is classified
against the signature patterns by size and aspect ratio.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from tools.document_schema import BoundingBox, MarkVerification

REFERENCE_STAMPS: List[Dict[str, str]] = [
    {
        "id": "officer_commanding",
        "name": "Officer Commanding Stamp",
        "description": "Official stamp of the Officer Commanding, 14th Bn A.P.S.P. Ananthapuramu",
    },
    {
        "id": "commissioner_police",
        "name": "Commissioner of Police Stamp",
        "description": "Official stamp of the Additional Commissioner of Police, Vijayawada City",
    },
    {
        "id": "director_general",
        "name": "Director General Stamp",
        "description": "Official stamp of the Additional Director General of Police, APSP Battalions",
    },
    {
        "id": "apsp_head_office",
        "name": "APSP Head Office Stamp",
        "description": "Official stamp of the APSP Head Office, Mangalagiri",
    },
    {
        "id": "igp_apsp",
        "name": "IGP APSP Stamp",
        "description": "Official stamp of the Inspector General of Police, APSP Battalions",
    },
]

SIGNATURE_PATTERNS: List[Dict[str, Any]] = [
    {
        "id": "handwritten",
        "description": "Handwritten signature pattern",
        "min_width": 50,
        "min_height": 20,
        "aspect_ratio_min": 1.5,
        "aspect_ratio_max": 5.0,
    },
    {
        "id": "digital",
        "description": "Digital signature pattern",
        "min_width": 100,
        "min_height": 30,
        "aspect_ratio_min": 2.0,
        "aspect_ratio_max": 6.0,
    },
]

# words every reference stamp shares; they say nothing about which one it is
_STOP_WORDS = {"official", "stamp", "of", "the", "police", "and", "a", "p", "s"}
_MIN_STAMP_OVERLAP = 2

_STAMP_KEYS = ("stamp validation",)
_SIGNATURE_KEYS = ("name (if written)", "date (if written)")


def _words(text: str) -> set:
    return {w for w in re.findall(r"[a-z0-9]+", text.lower()) if w not in _STOP_WORDS}


def _collect(obj: Any, keys: tuple) -> List[str]:
    """All non-empty string values stored under any of keys, at any depth."""
    found: List[str] = []
    if isinstance(obj, dict):
        for k, v in obj.items():
            if str(k).strip().lower() in keys and isinstance(v, str) and v.strip():
                found.append(v.strip())
            else:
                found.extend(_collect(v, keys))
    elif isinstance(obj, (list, tuple)):
        for v in obj:
            found.extend(_collect(v, keys))
    return found


def has_mark_sections(extracted_data: Dict[str, Any]) -> bool:
    """True when the reply follows the prompt's stamp/signature layout at all."""

    def _has_key(obj: Any) -> bool:
        if isinstance(obj, dict):
            return any(
                str(k).strip().lower() in _STAMP_KEYS + _SIGNATURE_KEYS or _has_key(v)
                for k, v in obj.items()
            )
        if isinstance(obj, (list, tuple)):
            return any(_has_key(v) for v in obj)
        return False

    return _has_key(extracted_data)


def match_stamp_reference(stamp_text: str) -> Optional[str]:
    words = _words(stamp_text)
    best_id, best_score = None, 0
    for ref in REFERENCE_STAMPS:
        score = len(words & _words(ref["name"] + " " + ref["description"]))
        if score > best_score:
            best_id, best_score = ref["id"], score
    return best_id if best_score >= _MIN_STAMP_OVERLAP else None


def verify_stamp(extracted_data: Dict[str, Any]) -> MarkVerification:
    texts = _collect(extracted_data, _STAMP_KEYS)
    if not texts:
        return MarkVerification(is_present=False, confidence=0.0)
    matched = None
    for t in texts:
        matched = match_stamp_reference(t)
        if matched:
            break
    return MarkVerification(
        is_present=True,
        confidence=0.9 if matched else 0.6,
        matched_reference=matched,
    )


def signature_pattern_for(bbox: BoundingBox) -> Optional[str]:
    if bbox.height <= 0:
        return None
    ratio = bbox.width / bbox.height
    # the stricter pattern first
    for pattern in sorted(SIGNATURE_PATTERNS, key=lambda p: p["min_width"], reverse=True):
        if (
            bbox.width >= pattern["min_width"]
            and bbox.height >= pattern["min_height"]
            and pattern["aspect_ratio_min"] <= ratio <= pattern["aspect_ratio_max"]
        ):
            return pattern["id"]
    return None


def verify_signature(extracted_data: Dict[str, Any], bbox: Optional[BoundingBox] = None) -> MarkVerification:
    written = _collect(extracted_data, _SIGNATURE_KEYS)
    pattern = signature_pattern_for(bbox) if bbox else None

    if not written and not pattern:
        return MarkVerification(is_present=False, confidence=0.0, bounding_box=bbox)

    confidence = 0.5
    if written:
        confidence += 0.15 * min(len(written), 2)
    if pattern:
        confidence += 0.15
    return MarkVerification(
        is_present=True,
        confidence=min(confidence, 0.95),
        matched_reference=pattern,
        bounding_box=bbox,
    )


def get_reference_stamps() -> List[Dict[str, str]]:
    return [dict(s) for s in REFERENCE_STAMPS]


def get_signature_patterns() -> List[Dict[str, Any]]:
    return [dict(p) for p in SIGNATURE_PATTERNS]
