# src/utils/templates_catalog.py
"""
Built-in document templates and the helpers that work on template lists.

Stored templates override a built-in with the same id; every other stored
template is a custom one and is listed after the built-ins.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from tools.document_schema import DocumentTemplate, TemplateField

RANKS = ["Constable", "Head Constable", "Sub-Inspector", "Inspector", "DSP", "SP"]


def _f(id: str, label: str, type: str = "text", required: bool = True, options=None) -> TemplateField:
    return TemplateField(id=id, label=label, type=type, required=required, options=options)


BUILT_IN_TEMPLATES: List[DocumentTemplate] = [
    DocumentTemplate(
        id="earned_leave",
        name="Earned Leave Letter",
        category="Leave",
        template=[
            _f("applicantName", "Applicant Name"),
            _f("employeeId", "Employee ID"),
            _f("department", "Department"),
            _f("designation", "Designation"),
            _f("leaveType", "Leave Type", "select",
               options=["Earned Leave", "Annual Leave", "Vacation Leave"]),
            _f("startDate", "Leave Start Date", "date"),
            _f("endDate", "Leave End Date", "date"),
            _f("duration", "Duration (Days)", "number"),
            _f("reason", "Reason for Leave", "textarea"),
            _f("supervisorName", "Supervisor Name"),
            _f("applicationDate", "Application Date", "date"),
            _f("contactNumber", "Contact Number", required=False),
            _f("emergencyContact", "Emergency Contact", required=False),
        ],
    ),
    DocumentTemplate(
        id="medical_leave",
        name="Medical Leave Letter",
        category="Leave",
        template=[
            _f("patientName", "Patient Name"),
            _f("employeeId", "Employee ID"),
            _f("department", "Department"),
            _f("designation", "Designation"),
            _f("medicalCondition", "Medical Condition", "textarea"),
            _f("doctorName", "Doctor Name"),
            _f("hospitalName", "Hospital/Clinic Name"),
            _f("leaveStartDate", "Medical Leave Start Date", "date"),
            _f("leaveEndDate", "Medical Leave End Date", "date"),
            _f("certificateNumber", "Medical Certificate Number", required=False),
            _f("treatmentDetails", "Treatment Details", "textarea", required=False),
            _f("applicationDate", "Application Date", "date"),
            _f("supervisorName", "Supervisor Name"),
        ],
    ),
    DocumentTemplate(
        id="probation_letter",
        name="Probation Letter",
        category="Administrative",
        template=[
            _f("employeeName", "Employee Name"),
            _f("employeeId", "Employee ID"),
            _f("position", "Position/Designation"),
            _f("department", "Department"),
            _f("probationStartDate", "Probation Start Date", "date"),
            _f("probationEndDate", "Probation End Date", "date"),
            _f("probationPeriod", "Probation Period (Months)", "number"),
            _f("evaluationCriteria", "Evaluation Criteria", "textarea"),
            _f("supervisorName", "Supervisor Name"),
            _f("reviewSchedule", "Review Schedule", "textarea", required=False),
            _f("conditions", "Terms and Conditions", "textarea"),
            _f("issuanceDate", "Letter Issuance Date", "date"),
            _f("hrSignature", "HR Signature"),
        ],
    ),
    DocumentTemplate(
        id="punishment_letter",
        name="Punishment Letter",
        category="Disciplinary",
        template=[
            _f("officerName", "Officer Name"),
            _f("badgeNumber", "Badge Number"),
            _f("rank", "Rank", "select", options=RANKS),
            _f("department", "Department"),
            _f("violationType", "Type of Violation", "select",
               options=["Misconduct", "Negligence of Duty", "Insubordination", "Unauthorized Absence", "Other"]),
            _f("incidentDate", "Incident Date", "date"),
            _f("incidentDescription", "Incident Description", "textarea"),
            _f("punishmentType", "Type of Punishment", "select",
               options=["Warning", "Suspension", "Fine", "Demotion", "Dismissal"]),
            _f("punishmentDuration", "Punishment Duration", required=False),
            _f("fineAmount", "Fine Amount (if applicable)", "number", required=False),
            _f("issuingAuthority", "Issuing Authority"),
            _f("effectiveDate", "Effective Date", "date"),
            _f("appealRights", "Appeal Rights Information", "textarea"),
        ],
    ),
    DocumentTemplate(
        id="reward_letter",
        name="Reward Letter",
        category="Recognition",
        template=[
            _f("recipientName", "Recipient Name"),
            _f("badgeNumber", "Badge Number"),
            _f("rank", "Rank", "select", options=RANKS),
            _f("department", "Department"),
            _f("awardType", "Type of Award", "select",
               options=["Gallantry Award", "Service Medal", "Commendation Certificate",
                        "Excellence Award", "Bravery Award"]),
            _f("achievementDescription", "Achievement Description", "textarea"),
            _f("achievementDate", "Achievement Date", "date"),
            _f("awardDate", "Award Date", "date"),
            _f("issuingAuthority", "Issuing Authority"),
            _f("witnessNames", "Witness Names", "textarea", required=False),
            _f("monetaryValue", "Monetary Value (if applicable)", "number", required=False),
            _f("ceremonyDetails", "Award Ceremony Details", "textarea", required=False),
            _f("citation", "Citation", "textarea"),
        ],
    ),
]

BUILT_IN_IDS = {t.id for t in BUILT_IN_TEMPLATES}

# model-reported "Document Type" -> built-in template id
_DOCUMENT_TYPE_KEYWORDS = [
    ("earned", "earned_leave"),
    ("medical", "medical_leave"),
    ("probation", "probation_letter"),
    ("punishment", "punishment_letter"),
    ("disciplin", "punishment_letter"),
    ("reward", "reward_letter"),
]


def built_in_templates() -> List[DocumentTemplate]:
    """Fresh copies, so callers can mutate them freely."""
    return [t.model_copy(deep=True) for t in BUILT_IN_TEMPLATES]


def get_built_in(template_id: str) -> Optional[DocumentTemplate]:
    for t in BUILT_IN_TEMPLATES:
        if t.id == template_id:
            return t.model_copy(deep=True)
    return None


def is_built_in(template_id: str) -> bool:
    return template_id in BUILT_IN_IDS


def merge_templates(stored: Iterable[DocumentTemplate]) -> List[DocumentTemplate]:
    stored_map = {t.id: t for t in stored}
    merged: List[DocumentTemplate] = []
    for default in built_in_templates():
        merged.append(stored_map.pop(default.id, default))
    merged.extend(stored_map.values())
    return merged


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def missing_required_fields(template: DocumentTemplate, fields: Dict[str, Any]) -> List[str]:
    """Labels of required fields that have no usable value."""
    fields = fields or {}
    return [f.label for f in template.template if f.required and _is_blank(fields.get(f.id))]


def search_templates(templates: Iterable[DocumentTemplate], query: str | None) -> List[DocumentTemplate]:
    templates = list(templates)
    if not query:
        return templates
    q = query.lower()
    return [
        t for t in templates
        if q in t.name.lower()
        or q in t.category.lower()
        or any(q in f.label.lower() for f in t.template)
    ]


def template_statistics(templates: Iterable[DocumentTemplate]) -> Dict[str, Any]:
    templates = list(templates)
    by_category = Counter(t.category for t in templates)
    avg = sum(len(t.template) for t in templates) / len(templates) if templates else 0.0
    return {
        "total_templates": len(templates),
        "templates_by_category": dict(by_category),
        "average_fields_per_template": avg,
    }


def template_id_for_document_type(document_type: str | None) -> Optional[str]:
    if not document_type:
        return None
    lowered = document_type.lower()
    for keyword, template_id in _DOCUMENT_TYPE_KEYWORDS:
        if keyword in lowered:
            return template_id
    return None


def make_template_id(name: str, existing: Iterable[str] = ()) -> str:
    base = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_") or "template"
    taken = set(existing)
    candidate, n = base, 2
    while candidate in taken:
        candidate = f"{base}_{n}"
        n += 1
    return candidate
