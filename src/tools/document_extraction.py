import os
import re
import json
import time
import base64
import tempfile
import mimetypes
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from langchain_core.tools import BaseTool
from mistralai import Mistral

from tools.document_schema import ExtractionResult, MarkVerification
from tools.parsing_prompt import DOCUMENT_PARSING_PROMPT, build_parsing_prompt
from utils.exceptions import ExtractionError
from utils.logging_config import get_logger
from utils.supabase_utils import get_mistral_api_key, get_vision_model

logger = get_logger(__name__)

OCR_MODEL = "mistral-ocr-latest"
MAX_TOKENS = 2000

STAMP_KEYWORDS = ("stamp", "seal", "official", "department", "government")
SIGNATURE_KEYWORDS = ("signature", "signed", "name (if written)", "date (if written)")

AuditFn = Callable[[str, str, str, str, Dict[str, Any]], None]


def calculate_confidence(extracted_data: Any) -> float:
    """
    Share of filled leaf fields, clamped to [0.3, 0.95].

    A list counts as one field. Falsy leaves (0, False, "") count as empty.
    """
    if not isinstance(extracted_data, dict):
        return 0.3

    total = 0
    filled = 0

    def count(obj: Dict[str, Any]) -> None:
        nonlocal total, filled
        for value in obj.values():
            if isinstance(value, dict):
                count(value)
            elif isinstance(value, list):
                total += 1
                if value:
                    filled += 1
            else:
                total += 1
                if value and str(value).strip() != "":
                    filled += 1

    count(extracted_data)
    if total == 0:
        return 0.3
    return max(0.3, min(0.95, filled / total))


def detect_mark_mentions(text: str, kind: str) -> MarkVerification:
    """Keyword fallback used when the reply has no stamp/signature sections."""
    lowered = (text or "").lower()
    keywords = STAMP_KEYWORDS if kind == "stamp" else SIGNATURE_KEYWORDS
    present = any(k in lowered for k in keywords)
    return MarkVerification(is_present=present, confidence=0.7 if present else 0.1)


def parse_model_response(text: str) -> Tuple[Dict[str, Any], str, float]:
    """(extracted_data, document_type, confidence) from the raw model reply."""
    match = re.search(r"\{[\s\S]*\}", text or "")
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.warning("model_response_not_json", length=len(text or ""))
        else:
            if isinstance(data, dict):
                return data, str(data.get("Document Type") or "Unknown"), calculate_confidence(data)
    return {"rawResponse": text or ""}, "Unknown", 0.8


class DocumentExtractor:
    """Sends one document to the Mistral vision model and parses the JSON it returns."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[Mistral] = None,
        audit: Optional[AuditFn] = None,
    ):
        self.model = model or get_vision_model()
        self._client = client
        self._api_key = api_key
        self.audit = audit

    @property
    def client(self) -> Mistral:
        if self._client is None:
            self._client = Mistral(api_key=self._api_key or get_mistral_api_key())
        return self._client

    def _audit(self, user_id: str, action: str, file_name: str, details: Dict[str, Any]) -> None:
        if self.audit:
            self.audit(user_id, action, "document", file_name, details)

    # ----------------- model calls -----------------
    def _ocr_text(self, encoded: str, mime_type: str) -> str:
        ocr_response = self.client.ocr.process(
            model=OCR_MODEL,
            document={
                "type": "document_url",
                "document_url": f"data:{mime_type};base64,{encoded}",
            },
        )
        return "\n\n".join(page.markdown for page in ocr_response.pages)

    def _complete(self, content) -> str:
        result = self.client.chat.complete(
            model=self.model,
            messages=[{"role": "user", "content": content}],
            temperature=DOCUMENT_PARSING_PROMPT["temperature"],
            max_tokens=MAX_TOKENS,
        )
        if not result or not result.choices:
            return ""
        message = result.choices[0].message
        return (message.content if message else "") or ""

    # ----------------- public -----------------
    def process_document(
        self,
        file_bytes: bytes,
        *,
        filename: str,
        mime_type: Optional[str] = None,
        user_id: str = "anonymous",
    ) -> ExtractionResult:
        start = time.monotonic()
        mime_type = mime_type or mimetypes.guess_type(filename)[0] or "image/jpeg"
        self._audit(user_id, "vision_processing_start", filename, {
            "fileSize": len(file_bytes),
            "fileType": mime_type,
            "model": self.model,
        })

        try:
            encoded = base64.b64encode(file_bytes).decode("utf-8")
            if mime_type == "application/pdf":
                content = [{"type": "text", "text": build_parsing_prompt(self._ocr_text(encoded, mime_type))}]
            else:
                content = [
                    {"type": "text", "text": build_parsing_prompt()},
                    {"type": "image_url", "image_url": f"data:{mime_type};base64,{encoded}"},
                ]
            response_text = self._complete(content)
        except Exception as e:
            self._audit(user_id, "vision_processing_error", filename, {"error": str(e)})
            logger.error("extraction_failed", file_name=filename, model=self.model, error=str(e))
            raise ExtractionError(
                f"Document processing failed: {e}",
                model=self.model,
                file_name=filename,
                original_error=e,
            ) from e

        extracted_data, document_type, confidence = parse_model_response(response_text)
        result = ExtractionResult(
            extracted_text=response_text,
            document_type=document_type,
            extracted_data=extracted_data,
            confidence=confidence,
            processing_time=int((time.monotonic() - start) * 1000),
            stamp_verification=detect_mark_mentions(response_text, "stamp"),
            signature_verification=detect_mark_mentions(response_text, "signature"),
        )

        self._audit(user_id, "vision_processing_complete", filename, {
            "confidence": result.confidence,
            "documentType": result.document_type,
            "processingTime": result.processing_time,
            "stampDetected": result.stamp_verification.is_present,
            "signatureDetected": result.signature_verification.is_present,
        })
        return result

    def check_service_health(self) -> bool:
        try:
            self.client.models.list()
            return True
        except Exception as e:
            logger.warning("vision_health_check_failed", error=str(e))
            return False


class ProcessDocumentTool(BaseTool):
    name: str = "process_document"
    description: str = (
        "Takes an image/PDF file path OR http(s) URL, parses a scanned form "
        "and returns its fields as structured output."
    )
    extractor: Optional[Any] = None
    user_id: str = "anonymous"

    def _get_extractor(self) -> DocumentExtractor:
        if self.extractor is None:
            self.extractor = DocumentExtractor()
        return self.extractor

    def _run(self, image_path: str) -> dict:
        """
        `image_path` can be a local filesystem path OR an http(s) URL.
        URLs are downloaded to a temp file first so both branches read bytes the same way.
        """
        if self._is_url(image_path):
            tmp_path = self._download_url_to_temp(image_path)
            try:
                return self._process_path(tmp_path, image_path)
            finally:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)

        if not os.path.exists(image_path):
            raise FileNotFoundError(f"The file {image_path} was not found.")
        return self._process_path(image_path, image_path)

    async def _arun(self, image_path: str) -> dict:
        return self._run(image_path)

    # ----------------- helpers -----------------
    def _process_path(self, path: str, source: str) -> dict:
        with open(path, "rb") as f:
            file_bytes = f.read()
        filename = os.path.basename(source.split("?", 1)[0]) or os.path.basename(path)
        mime_type = mimetypes.guess_type(path)[0]
        result = self._get_extractor().process_document(
            file_bytes, filename=filename, mime_type=mime_type, user_id=self.user_id
        )
        return result.model_dump()

    def _is_url(self, s: str) -> bool:
        return isinstance(s, str) and s.lower().startswith(("http://", "https://"))

    def _download_url_to_temp(self, url: str) -> str:
        """
        Downloads the URL to a temp file and returns the file path.
        Tries to preserve extension based on Content-Type or URL.
        """
        resp = requests.get(url, timeout=30)
        resp.raise_for_status()

        ext_hint = None
        ctype = resp.headers.get("Content-Type")
        if ctype:
            ext_hint = mimetypes.guess_extension(ctype.split(";")[0].strip())
        if not ext_hint:
            ext_hint = mimetypes.guess_extension(mimetypes.guess_type(url.split("?", 1)[0])[0] or "")
        if ext_hint in (".jpe",):
            ext_hint = ".jpg"

        fd, path = tempfile.mkstemp(prefix="document_", suffix=ext_hint or ".jpg")
        with os.fdopen(fd, "wb") as f:
            f.write(resp.content)
        return path
