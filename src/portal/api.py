# portal/api.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from utils.exceptions import DocumentNotFoundError, DocumentValidationError, SparkError
from utils.local_store import DocumentFilters, LocalDocumentStore, get_document_store
from utils.logging_config import configure_logging, get_logger
from utils import supabase_utils as cfg

configure_logging()
logger = get_logger(__name__)

app = FastAPI(title="SPARK Document API")


def get_store() -> LocalDocumentStore:
    return get_document_store()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@app.exception_handler(SparkError)
async def spark_error_handler(request: Request, exc: SparkError):
    if isinstance(exc, DocumentNotFoundError):
        status = 404
    elif isinstance(exc, DocumentValidationError):
        status = 422
    else:
        status = 400
    logger.warning("api_error", path=request.url.path, error_type=exc.__class__.__name__, message=exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.get("/health")
def root_health():
    return {"ok": True, "service": "spark-api", "time": _now()}


@app.get("/checks/health")
def checks_health(store: LocalDocumentStore = Depends(get_store)):
    try:
        store.get_template_statistics()
        db = "ok"
    except Exception as e:
        logger.warning("health_db_failed", error=str(e))
        db = "error"
    return {
        "ok": db == "ok",
        "checks": {
            "db": db,
            "supabase": "configured" if cfg.supabase_configured() else "not-configured",
            "vision_model": "configured" if cfg.get_mistral_api_key(required=False) else "not-configured",
            "sync": "on" if store.is_sync_enabled() else "off",
        },
        "time": _now(),
    }


@app.get("/documents")
def list_documents(
    q: Optional[str] = Query(None),
    document_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
    min_confidence: Optional[float] = Query(None, ge=0.0, le=1.0),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    store: LocalDocumentStore = Depends(get_store),
):
    filters = DocumentFilters(
        document_type=document_type,
        status=status,
        location=location,
        min_confidence=min_confidence,
        date_from=date_from,
        date_to=date_to,
    )
    docs = store.search_documents(q, filters)
    return {
        "ok": True,
        "count": len(docs),
        "documents": [d.model_dump(mode="json", exclude={"document_data"}) for d in docs],
    }


@app.get("/documents/{doc_id}")
def get_document(doc_id: str, store: LocalDocumentStore = Depends(get_store)):
    doc = store.get_document(doc_id)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"Document not found: {doc_id}")
    return doc.model_dump(mode="json", exclude={"document_data"})


@app.post("/documents/{doc_id}/finalize")
def finalize_document(
    doc_id: str,
    user_id: str = Query("api"),
    store: LocalDocumentStore = Depends(get_store),
):
    doc = store.finalize_document(doc_id, user_id)
    return {"ok": True, "document": doc.model_dump(mode="json", exclude={"document_data"})}


@app.get("/templates")
def list_templates(
    category: Optional[str] = Query(None, min_length=2),
    store: LocalDocumentStore = Depends(get_store),
):
    templates = store.get_templates_by_category(category) if category else store.get_all_templates()
    return {"ok": True, "templates": [t.model_dump() for t in templates]}


@app.get("/stats")
def stats(store: LocalDocumentStore = Depends(get_store)):
    return {
        "ok": True,
        "documents": store.get_document_statistics(),
        "templates": store.get_template_statistics(),
    }
