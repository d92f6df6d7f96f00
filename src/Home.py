import streamlit as st
import sys, os

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))          # /app/src
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # /app

from portal.theme import page_setup, hero
from portal.ui import card, operator_sidebar
from utils.local_store import get_document_store
from utils.exceptions import StorageError

page_setup("Home")
user_id, location = operator_sidebar()

hero(
    "SPARK<br/>Document Scanner",
    "Scan leave, probation, punishment and reward letters into searchable, editable records.",
    cta_text="Scan a document",
    cta_page="pages/1_scan_document.py",
)

st.write("")
try:
    stats = get_document_store().get_document_statistics()
except StorageError as e:
    st.error(f"Local database unavailable: {e.message}")
    st.stop()

c1, c2, c3, c4 = st.columns(4)
c1.metric("Documents", stats["total_documents"])
c2.metric("Pending", stats["documents_by_status"].get("pending", 0))
c3.metric("Finalized", stats["documents_by_status"].get("finalized", 0))
c4.metric("This month", stats["documents_this_month"])

left, right = st.columns(2)
with left:
    with card("Scan on this computer", "Camera or file upload, reviewed before saving."):
        st.page_link("pages/1_scan_document.py", label="Open scanner", icon="📷")
with right:
    with card("Use a phone as the scanner", "Open a session, scan the QR code, upload from the phone."):
        st.page_link("pages/4_qr_upload.py", label="Start a QR session", icon="📱")

if user_id == "anonymous":
    st.info("Enter your Operator ID in the sidebar; it is recorded on every document you save.")
