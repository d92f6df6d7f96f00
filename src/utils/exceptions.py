# src/utils/exceptions.py
"""Exception hierarchy shared by the store, the extractor and the upload flow."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SparkError(Exception):
    """Base exception for all SPARK errors."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }
        if self.original_error:
            result["original_error"] = str(self.original_error)
        return result


class StorageError(SparkError):
    """Local database or hosted table write failed."""


class DocumentNotFoundError(SparkError):
    def __init__(self, doc_id: str):
        super().__init__(f"Document not found: {doc_id}", {"doc_id": doc_id})


class DocumentValidationError(SparkError):
    """Record violates its template (missing required values, bad status)."""

    def __init__(
        self,
        message: str,
        doc_id: Optional[str] = None,
        missing_fields: Optional[List[str]] = None,
    ):
        context: Dict[str, Any] = {}
        if doc_id:
            context["doc_id"] = doc_id
        if missing_fields:
            context["missing_fields"] = missing_fields
        super().__init__(message, context)
        self.missing_fields = missing_fields or []


class TemplateError(SparkError):
    def __init__(self, message: str, template_id: Optional[str] = None):
        super().__init__(message, {"template_id": template_id} if template_id else {})


class UploadSessionError(SparkError):
    def __init__(self, message: str = "Invalid or expired session", session_id: Optional[str] = None):
        super().__init__(message, {"session_id": session_id} if session_id else {})


class UploadError(SparkError):
    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, {"file_name": file_name} if file_name else {}, original_error)


class ExtractionError(SparkError):
    """Vision model call or response handling failed."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        file_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        context = {}
        if model:
            context["model"] = model
        if file_name:
            context["file_name"] = file_name
        super().__init__(message, context, original_error)
