# src/agents/document_parser/agent.py

import os
import mimetypes
from typing import TypedDict, Optional, Dict, Any

import requests
from dotenv import load_dotenv
from langgraph.graph import StateGraph, END

from tools.document_extraction import DocumentExtractor, detect_mark_mentions
from tools.document_schema import ExtractionResult
from tools.mark_verification import has_mark_sections, verify_signature, verify_stamp
from utils.logging_config import get_logger

# ---- env hygiene --------------------------------------------------------------
load_dotenv()
# Silence the tracer warning by unsetting the var if present
os.environ.pop("LANGCHAIN_TRACING_V2", None)

logger = get_logger(__name__)


# ---- LangGraph state ----------------------------------------------------------
class DocumentState(TypedDict, total=False):
    file_bytes: bytes
    filename: str
    mime_type: Optional[str]
    user_id: str
    result: ExtractionResult


def build_graph(extractor: DocumentExtractor):
    def extract_document(state: DocumentState) -> Dict[str, Any]:
        """Step 1: send the page to the vision model."""
        result = extractor.process_document(
            state["file_bytes"],
            filename=state["filename"],
            mime_type=state.get("mime_type"),
            user_id=state.get("user_id") or "anonymous",
        )
        return {"result": result}

    def verify_marks(state: DocumentState) -> Dict[str, Any]:
        """Step 2: stamp/signature checks on the structured reply, keywords otherwise."""
        result = state["result"]
        if has_mark_sections(result.extracted_data):
            stamp = verify_stamp(result.extracted_data)
            signature = verify_signature(result.extracted_data)
        else:
            stamp = detect_mark_mentions(result.extracted_text, "stamp")
            signature = detect_mark_mentions(result.extracted_text, "signature")
        return {
            "result": result.model_copy(
                update={"stamp_verification": stamp, "signature_verification": signature}
            )
        }

    workflow = StateGraph(DocumentState)
    workflow.add_node("extract_document", extract_document)
    workflow.add_node("verify_marks", verify_marks)
    workflow.set_entry_point("extract_document")
    workflow.add_edge("extract_document", "verify_marks")
    workflow.add_edge("verify_marks", END)
    return workflow.compile()


# ---- Public entrypoint for Streamlit -----------------------------------------
def parse_document(
    file_bytes: Optional[bytes] = None,
    file_url: Optional[str] = None,
    filename: Optional[str] = None,
    mime_type: Optional[str] = None,
    user_id: str = "anonymous",
    extractor: Optional[DocumentExtractor] = None,
) -> ExtractionResult:
    """
    Runs the graph over raw bytes, or over the bytes downloaded from file_url:
        extract_document -> verify_marks
    """
    if not file_bytes:
        if not file_url:
            raise ValueError("No file_bytes or file_url provided.")
        resp = requests.get(file_url, timeout=30)
        resp.raise_for_status()
        file_bytes = resp.content
        filename = filename or os.path.basename(file_url.split("?", 1)[0])
        if not mime_type:
            ctype = resp.headers.get("Content-Type")
            mime_type = ctype.split(";")[0].strip() if ctype else None

    filename = filename or "document"
    mime_type = mime_type or mimetypes.guess_type(filename)[0]

    app = build_graph(extractor or DocumentExtractor())
    out = app.invoke({
        "file_bytes": file_bytes,
        "filename": filename,
        "mime_type": mime_type,
        "user_id": user_id,
    })
    result = out["result"]
    logger.info(
        "document_parsed",
        file_name=filename,
        document_type=result.document_type,
        confidence=result.confidence,
        stamp_present=result.stamp_verification.is_present if result.stamp_verification else False,
        signature_present=result.signature_verification.is_present if result.signature_verification else False,
    )
    return result


# Optional local CLI
if __name__ == "__main__":
    while True:
        query = input("Enter an image path or URL (q to quit): ")
        if query.lower().strip() == "q":
            break
        if query.lower().startswith(("http://", "https://")):
            res = parse_document(file_url=query)
        else:
            with open(query, "rb") as f:
                res = parse_document(file_bytes=f.read(), filename=os.path.basename(query))
        print(res.model_dump_json(indent=2))
        print("-----" * 20)
