"""Prompt sent to the vision model, with the JSON shape expected for each letter type."""

import json

_SIGNATURE = {"Name (if written)": "", "Date (if written)": ""}
_STAMP = {"Stamp Validation": "", "Signature": dict(_SIGNATURE)}

DOCUMENT_PARSING_PROMPT = {
    "prompt": (
        "You are a precise document parser. Use only your built-in vision model capabilities to detect "
        "and extract text from documents, including handwritten or signature sections. Do NOT use external "
        "OCR engines. Extract only the fields defined below for each document type using visible text, stamp "
        "areas, and handwriting within the image. If names or dates are written near or inside the signature, "
        "extract them using your visual understanding. Never infer or hallucinate missing values. Return your "
        "response in pure JSON."
    ),
    "temperature": 0.3,
    "document_parsing_instructions": [
        {
            "document_type": "Earned Leave",
            "json_format": {
                "Document Type": "Earned Leave",
                "Solution": {
                    "R c No.": "",
                    "H.O.D No.": "",
                    "PC No.": "",
                    "Name": "",
                    "Date": "",
                    "Number of Days": "",
                    "Leave From Date": "",
                    "Leave To Date": "",
                    "Leave Reason": "",
                },
                "Stamp": _STAMP,
                "Document Status": "",
            },
        },
        {
            "document_type": "Medical Leave",
            "json_format": {
                "Document Type": "Medical Leave",
                "Solution": {
                    "Name": "",
                    "Date of Submission": "",
                    "Coy Belongs to": "",
                    "Rank": "",
                    "Leave Reason": "",
                    "HC No": "",
                    "Phone Number": "",
                    "Unit and District": {"Values": "", "Validation": ""},
                },
                "Stamp": _STAMP,
                "Document Status": "",
            },
        },
        {
            "document_type": "Probation Letter",
            "json_format": {
                "Document Type": "Probation Letter",
                "Solution": {
                    "Service Class Category": "",
                    "Name of Probationer": "",
                    "Date of Regularization": "",
                    "Date of completion of probation": "",
                    "Period of Probation Prescribed": "",
                    "Number of days Leave Taken During Probation": "",
                    "Tests to be Passed During Probation": "",
                    "Punishments During Probation": "",
                    "Pending PR/OE": "",
                    "Character and Conduct": "",
                    "Firing Practice Completed": "",
                    "Remarks of I/C Officer": "",
                    "Remarks of Commandant": "",
                    "Remarks of DIG": "",
                    "ADGP Orders": "",
                    "Probation extended for": "",
                    "Date of Birth": "",
                    "Salary": "",
                    "Qualification": "",
                    "Acceptance of Self Appraisal Report - Part-I": "",
                    "Assessment of Officer's Performance During the Year": "",
                    "Reporting Officer": {"Date": "", "Name": "", "Designation": ""},
                    "Countersigning Officer": {"Date": "", "Name": "", "Designation": "", "Remarks": ""},
                    "Head of Department Opinion": {"Opinion": "", "Date": "", "Name": "", "Designation": ""},
                },
                "Stamps and Signatures": [_STAMP],
                "Document Status": "",
            },
        },
        {
            "document_type": "Punishment Letter",
            "json_format": {
                "Document Type": "Punishment Letter",
                "Solution": {
                    "R c. No": "",
                    "D. O No": "",
                    "Order_date": "",
                    "Punishment_awarded": "",
                    "Deliquency_Description": "",
                    "Issued By": "",
                    "Issued Date": "",
                },
                "Signature": _SIGNATURE,
                "Document Status": "",
            },
        },
        {
            "document_type": "Reward Letter",
            "json_format": {
                "Document Type": "Reward Letter",
                "Solution": {
                    "R c No": "",
                    "H. O. O No": "",
                    "Date": "",
                    "Issued By": "",
                    "Subject": "",
                    "Reference Orders": [],
                    "Reward Details": [{"Rank": "", "Name": "", "Reward": ""}],
                    "Reason for Reward": "",
                },
                "Stamp": _STAMP,
                "Document Status": "",
            },
        },
    ],
    "instructions": [
        "Identify the document type before parsing.",
        "Use only your vision model's internal text and handwriting recognition to extract information.",
        "Do not use external OCR systems.",
        "Leave any missing or unreadable fields blank.",
        "Return only a clean, parsable JSON. Do not include any explanation or commentary.",
        "All date fields must follow the dd-mm-yyyy format, if readable.",
    ],
}


def build_parsing_prompt(ocr_text: str | None = None) -> str:
    """Full prompt text. When ocr_text is given (PDF input) it replaces the image."""
    p = DOCUMENT_PARSING_PROMPT
    parts = [
        p["prompt"],
        "",
        "Document Types and Required JSON Formats:",
        json.dumps(p["document_parsing_instructions"], indent=2, ensure_ascii=False),
        "",
        "Instructions:",
        "\n".join(f"- {inst}" for inst in p["instructions"]),
        "",
    ]
    if ocr_text:
        parts += [
            "The document text, read page by page, is below.",
            "----- DOCUMENT TEXT -----",
            ocr_text,
            "----- END DOCUMENT TEXT -----",
            "",
            "Please analyze the document text and extract the information according to the "
            "formats above. Return only valid JSON.",
        ]
    else:
        parts.append(
            "Please analyze the provided document image and extract the information according to the "
            "formats above. Return only valid JSON."
        )
    return "\n".join(parts)
