# src/pages/2_documents.py
from datetime import datetime, time, timezone

import pandas as pd
import streamlit as st

from portal.theme import page_setup, page_header
from portal.ui import card, operator_sidebar, status_pill, template_form_fields
from tools.document_schema import DocumentStatus
from utils.exceptions import DocumentValidationError, SparkError
from utils.local_store import DocumentFilters, get_document_store

page_setup("Browse & Edit", "SPARK · Documents")
user_id, location = operator_sidebar()
page_header("Documents", "Search, edit, finalize or reject stored records.")

store = get_document_store()
templates = store.get_all_templates()

# ---------------------------------
# Filters
# ---------------------------------
with card("Search"):
    query = st.text_input("Text", placeholder="name, reason, raw text…")
    f1, f2, f3, f4 = st.columns(4)
    type_names = {"All": None, **{t.name: t.id for t in templates}}
    doc_type = f1.selectbox("Type", list(type_names.keys()))
    status = f2.selectbox("Status", ["All"] + [s.value for s in DocumentStatus])
    loc = f3.text_input("Location")
    min_conf = f4.slider("Min confidence", 0.0, 1.0, 0.0, 0.05)
    dates = st.date_input("Date range", value=(), format="DD-MM-YYYY")

date_from = date_to = None
if isinstance(dates, tuple) and len(dates) == 2:
    date_from = datetime.combine(dates[0], time.min, tzinfo=timezone.utc)
    date_to = datetime.combine(dates[1], time.max, tzinfo=timezone.utc)

docs = store.search_documents(
    query,
    DocumentFilters(
        document_type=type_names[doc_type],
        status=None if status == "All" else status,
        location=loc or None,
        min_confidence=min_conf or None,
        date_from=date_from,
        date_to=date_to,
    ),
)

# ---------------------------------
# Table + export
# ---------------------------------
df = pd.DataFrame(
    [
        {
            "id": d.id,
            "type": d.type.name,
            "status": d.status.value,
            "confidence": round(d.confidence, 2),
            "location": d.location,
            "created_by": d.created_by,
            "timestamp": d.timestamp,
            **{f"field:{k}": v for k, v in d.fields.items()},
        }
        for d in docs
    ]
)

st.caption(f"{len(docs)} document(s)")
if df.empty:
    st.info("No documents match.")
else:
    st.dataframe(df[["id", "type", "status", "confidence", "location", "created_by", "timestamp"]],
                 use_container_width=True, hide_index=True)

e1, e2, e3 = st.columns(3)
e1.download_button("⬇️ Export JSON", store.export_documents(), file_name="spark_documents.json",
                   mime="application/json")
e2.download_button("⬇️ Export CSV", df.to_csv(index=False), file_name="spark_documents.csv",
                   mime="text/csv", disabled=df.empty)
with e3:
    sync = st.toggle("Mirror to Supabase", value=store.is_sync_enabled())
    if sync != store.is_sync_enabled():
        store.set_sync_enabled(sync)
        if sync and not store.is_sync_enabled():
            st.warning("Supabase is not configured.")
    if store.is_sync_enabled() and st.button("Sync now"):
        ok, msg = store.sync_to_supabase()
        (st.success if ok else st.error)(msg)

if df.empty:
    st.stop()

# ---------------------------------
# Detail
# ---------------------------------
selected = st.selectbox(
    "Open document",
    [d.id for d in docs],
    format_func=lambda i: next(f"{d.type.name} · {d.id} · {d.status.value}" for d in docs if d.id == i),
)
doc = store.get_document(selected)
if doc is None:
    st.warning("Document was removed.")
    st.stop()

template = store.get_template(doc.type.id)

with card(f"{doc.type.name}", f"{doc.id} · {doc.location} · by {doc.created_by}"):
    st.markdown(status_pill(doc.status.value), unsafe_allow_html=True)
    if doc.finalized_by:
        st.caption(f"Finalized by {doc.finalized_by} on {doc.finalized_on:%d-%m-%Y %H:%M}")
    rejection = doc.metadata.get("rejection")
    if rejection:
        st.caption(f"Rejected by {rejection.get('by')}: {rejection.get('reason') or 'no reason given'}")

    if template is None:
        st.warning("Template no longer exists; showing raw fields.")
        st.json(doc.fields)
    else:
        with st.form(f"edit_{doc.id}"):
            edited = template_form_fields(template, doc.fields, key_prefix=f"edit_{doc.id}")
            tags = st.text_input("Tags (comma separated)", value=", ".join(doc.tags))
            save = st.form_submit_button("💾 Save changes")
        if save:
            try:
                store.update_document(doc.id, {
                    "fields": edited,
                    "tags": [t.strip() for t in tags.split(",") if t.strip()],
                }, user_id=user_id)
            except DocumentValidationError as e:
                st.error("A finalized document needs every required field: " + ", ".join(e.missing_fields))
            else:
                st.success("Saved.")
                st.rerun()

    a1, a2, a3 = st.columns(3)
    if a1.button("✅ Finalize", disabled=doc.status == DocumentStatus.FINALIZED):
        try:
            store.finalize_document(doc.id, user_id)
        except DocumentValidationError as e:
            st.error("Fill the required fields first: " + ", ".join(e.missing_fields))
        else:
            st.success("Finalized.")
            st.rerun()

    with a2.popover("⛔ Reject", disabled=doc.status == DocumentStatus.REJECTED):
        reason = st.text_input("Reason", key=f"reject_reason_{doc.id}")
        if st.button("Confirm reject", key=f"reject_{doc.id}"):
            store.reject_document(doc.id, user_id, reason)
            st.rerun()

    with a3.popover("🗑️ Delete"):
        st.write("This cannot be undone.")
        if st.button("Confirm delete", key=f"delete_{doc.id}"):
            store.delete_document(doc.id, user_id=user_id)
            st.rerun()

    with st.expander("Raw text and extracted values"):
        st.text(doc.ocr_raw_text or "—")
        st.json(doc.metadata.get("extracted_fields", {}))
        st.json(doc.processing_metadata)

# ---------------------------------
# Maintenance
# ---------------------------------
with st.expander("Danger zone"):
    confirm = st.text_input("Type CLEAR to delete every document, template and audit entry")
    if st.button("Clear database", disabled=confirm != "CLEAR"):
        try:
            store.clear_database()
        except SparkError as e:
            st.error(e.message)
        else:
            st.success("Database cleared.")
            st.rerun()
