# src/pages/4_qr_upload.py
import requests
import streamlit as st

from portal.theme import page_setup, page_header
from portal.ui import card, operator_sidebar
from utils.documents_repo import build_document_record
from utils.exceptions import ExtractionError, SparkError
from utils.local_store import get_document_store
from utils.qr_utils import build_mobile_upload_url, fetch_qr_png
from utils.upload_sessions import get_qr_upload_service
from utils import supabase_utils as cfg
from utils import templates_catalog as catalog

AUTO = "Auto-detect"

page_setup("QR Upload", "SPARK · QR Upload")
user_id, location = operator_sidebar()
page_header("Phone Scanner", "Scan the QR code with a phone, upload pages there, watch them arrive here.")

if not cfg.supabase_configured():
    st.error("QR uploads need Supabase storage. Set SUPABASE_URL and SUPABASE_SERVICE_KEY.")
    st.stop()

service = get_qr_upload_service()
store = get_document_store()
service.cleanup_expired_sessions()

# ---------------------------------
# Sessions
# ---------------------------------
with card("Upload sessions"):
    c1, c2 = st.columns([2, 1])
    hours = c1.select_slider("Valid for (hours)", options=[1, 4, 8, 24, 48], value=cfg.get_session_hours())
    if c2.button("➕ New session", type="primary"):
        st.session_state["qr_session"] = service.create_upload_session(user_id, hours)

    sessions = service.active_sessions(user_id)
    if not sessions:
        st.info("No active sessions. Create one to get a QR code.")
        st.stop()

    ids = [s.session_id for s in sessions]
    current = st.session_state.get("qr_session")
    session_id = st.selectbox(
        "Session",
        ids,
        index=ids.index(current) if current in ids else 0,
        format_func=lambda sid: f"{sid} · expires {service.get_session(sid).expires_at:%d-%m %H:%M} UTC",
    )
    st.session_state["qr_session"] = session_id

mobile_url = build_mobile_upload_url(cfg.get_public_base_url(), session_id)

left, right = st.columns([1, 2])
with left:
    try:
        st.image(fetch_qr_png(mobile_url), caption="Scan with the phone camera")
    except requests.RequestException:
        st.warning("QR image service unreachable; open the link on the phone instead.")
    st.code(mobile_url, language=None)
    if st.button("⛔ Revoke session"):
        service.revoke_session(session_id)
        st.session_state.pop("qr_session", None)
        st.rerun()

# ---------------------------------
# Live uploads
# ---------------------------------
with right:
    template_choice = st.selectbox(
        "Template for processed uploads",
        [AUTO] + [t.name for t in store.get_all_templates()],
    )

    @st.fragment(run_every="5s")
    def watch_uploads(session_id: str):
        seen_key = f"qr_seen_{session_id}"
        cursor_key = f"qr_cursor_{session_id}"
        seen = st.session_state.setdefault(seen_key, {})

        rows, cursor = service.poll_new_uploads(session_id, st.session_state.get(cursor_key))
        st.session_state[cursor_key] = cursor
        for row in rows:
            if row.get("id") not in seen and st.session_state.get(f"{cursor_key}_primed"):
                st.toast(f"📥 {row.get('file_name')} uploaded")
            seen[row.get("id")] = row
        st.session_state[f"{cursor_key}_primed"] = True

        st.caption(f"{len(seen)} file(s) in this session · refreshes every 5 s")
        for row in sorted(seen.values(), key=lambda r: r.get("created_at") or "", reverse=True):
            c1, c2 = st.columns([3, 1])
            size_kb = (row.get("file_size") or 0) / 1024
            c1.write(f"**{row.get('file_name')}** · {size_kb:.0f} KB · {row.get('created_at', '')[:19]}")
            if row.get("processed"):
                c2.write("✅ processed")
                continue
            if c2.button("Process", key=f"process_{row['id']}"):
                _process(row)

    def _process(row: dict):
        try:
            with st.spinner(f"Reading {row.get('file_name')}…"):
                result = service.process_uploaded_document(row["id"], user_id)
        except ExtractionError as e:
            st.error(f"❌ {e.message}")
            return
        except SparkError as e:
            st.error(e.message)
            return

        if template_choice == AUTO:
            template = store.get_template(catalog.template_id_for_document_type(result.document_type) or "")
        else:
            template = next(t for t in store.get_all_templates() if t.name == template_choice)
        if template is None:
            st.warning(f"“{result.document_type}” matches no template; pick one above and process again.")
            return

        record = build_document_record(
            result,
            template=template,
            created_by=user_id,
            location=location,
            image_url=service.supabase.storage.from_(service.bucket).get_public_url(row["file_path"]),
            tags=["qr-upload"],
        )
        doc_id = store.save_document(record)
        row["processed"] = True
        st.success(f"🗂️ Saved {doc_id} as pending. Review it under Documents.")

    watch_uploads(session_id)
