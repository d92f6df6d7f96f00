# src/pages/1_scan_document.py
import base64
import hashlib

import streamlit as st

from portal.theme import page_setup, page_header
from portal.ui import card, operator_sidebar, template_form_fields
from utils.documents_repo import build_document_record
from utils.exceptions import ExtractionError, StorageError
from utils.local_store import get_document_store
from utils import templates_catalog as catalog

# the model stack is imported lazily, on the first extraction

AUTO = "Auto-detect from document"

page_setup("Scan Document", "SPARK · Scan")
user_id, location = operator_sidebar()
page_header("Scan Document", "Capture or upload a form, review the extracted values, save it as pending.")

store = get_document_store()
templates = store.get_all_templates()
by_name = {t.name: t for t in templates}

# ---------------------------------
# 1. Input
# ---------------------------------
with card("1 · Document", "JPEG, PNG or PDF, one form per file."):
    choice = st.selectbox("Template", [AUTO] + list(by_name.keys()))
    tab_upload, tab_camera = st.tabs(["📁 Upload", "📷 Camera"])
    with tab_upload:
        uploaded = st.file_uploader("Upload a scanned form", type=["jpg", "jpeg", "png", "pdf"])
    with tab_camera:
        captured = st.camera_input("Take a picture of the form")

source = uploaded or captured
if not source:
    st.stop()

file_bytes = source.getvalue()
filename = getattr(source, "name", None) or "camera.jpg"
mime_type = source.type or "image/jpeg"
digest = hashlib.sha1(file_bytes).hexdigest()

if mime_type != "application/pdf":
    st.image(file_bytes, caption="Preview", use_container_width=True)

# ---------------------------------
# 2. Extraction (cached per file)
# ---------------------------------
if st.session_state.get("scan_digest") != digest:
    st.session_state.pop("scan_result", None)
    st.session_state["scan_digest"] = digest

if st.button("🔎 Extract fields", type="primary"):
    with st.spinner("Reading the document…"):
        from agents.document_parser.agent import parse_document
        from tools.document_extraction import DocumentExtractor

        try:
            st.session_state["scan_result"] = parse_document(
                file_bytes=file_bytes,
                filename=filename,
                mime_type=mime_type,
                user_id=user_id,
                extractor=DocumentExtractor(audit=store.log_action),
            )
        except ExtractionError as e:
            st.error(f"❌ {e.message}")
            st.stop()
        except RuntimeError as e:
            # missing MISTRAL_API_KEY
            st.error(str(e))
            st.stop()

result = st.session_state.get("scan_result")
if result is None:
    st.stop()

if choice == AUTO:
    template = store.get_template(catalog.template_id_for_document_type(result.document_type) or "")
    if template is None:
        st.warning(f"Could not match “{result.document_type}” to a template. Pick one above.")
        st.stop()
else:
    template = by_name[choice]

c1, c2, c3, c4 = st.columns(4)
c1.metric("Detected type", result.document_type or "Unknown")
c2.metric("Confidence", f"{result.confidence:.0%}")
c3.metric("Stamp", "✅" if result.stamp_verification and result.stamp_verification.is_present else "—")
c4.metric("Signature", "✅" if result.signature_verification and result.signature_verification.is_present else "—")

record = build_document_record(
    result,
    template=template,
    created_by=user_id,
    location=location,
    document_data=base64.b64encode(file_bytes).decode("utf-8"),
)

# ---------------------------------
# 3. Review + save
# ---------------------------------
with card("2 · Review", f"Template: {template.name} ({template.category}). Fields marked * are required to finalize."):
    with st.form("scan_review"):
        edited = template_form_fields(template, record.fields, key_prefix=f"scan_{digest[:8]}")
        tags = st.text_input("Tags (comma separated)")
        submitted = st.form_submit_button("💾 Save as pending", type="primary")

if submitted:
    record.fields = edited
    record.tags = [t.strip() for t in tags.split(",") if t.strip()]
    missing = catalog.missing_required_fields(template, record.fields)
    try:
        doc_id = store.save_document(record)
    except StorageError as e:
        st.error(f"❌ Could not save: {e.message}")
    else:
        st.success(f"🗂️ Saved {doc_id}.")
        if missing:
            st.info("Before it can be finalized, fill: " + ", ".join(missing))
        st.session_state.pop("scan_result", None)
        st.session_state.pop("scan_digest", None)

with st.expander("Raw model output"):
    st.json(result.extracted_data)
    st.caption(f"Processed in {result.processing_time} ms")
