# src/pages/5_mobile_upload.py
import streamlit as st

from portal.theme import page_setup, page_header
from portal.ui import card
from utils.exceptions import UploadError, UploadSessionError
from utils.upload_sessions import MAX_FILE_SIZE, get_qr_upload_service

page_setup("Mobile Upload", "SPARK · Upload", layout="centered", menu=False)
page_header("Upload Documents", "Photos or PDFs of the forms, one page per file.")

session_id = st.query_params.get("session")
if not session_id:
    st.error("No upload session. Scan the QR code shown on the desktop.")
    st.stop()

service = get_qr_upload_service()
if not service.validate_session(session_id):
    st.error("This upload session is invalid or has expired. Ask for a new QR code.")
    st.stop()

with card("Files", f"JPEG, PNG or PDF, up to {MAX_FILE_SIZE // (1024 * 1024)} MB each."):
    files = st.file_uploader(
        "Choose or capture files",
        type=["jpg", "jpeg", "png", "pdf"],
        accept_multiple_files=True,
        key="mobile_files",
    )
    if st.button("⬆️ Upload", type="primary", disabled=not files, use_container_width=True):
        ok = 0
        for f in files:
            try:
                service.upload_file(session_id, f.getvalue(), f.name, f.type)
                ok += 1
            except UploadSessionError:
                st.error("The session expired while uploading.")
                st.stop()
            except UploadError as e:
                st.error(f"{f.name}: {e.message}")
        if ok:
            st.success(f"✅ {ok} file(s) uploaded. They are now visible on the desktop.")

st.subheader("This session")
uploads = service.get_session_uploads(session_id)
if not uploads:
    st.caption("Nothing uploaded yet.")
for row in uploads:
    state = "✅ processed" if row.get("processed") else "⏳ waiting"
    st.write(f"{row.get('file_name')} · {state}")
