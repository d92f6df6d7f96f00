# src/pages/6_analytics.py
import pandas as pd
import streamlit as st

from portal.theme import page_setup, page_header
from portal.ui import operator_sidebar
from utils.local_store import get_document_store

page_setup("Analytics", "SPARK · Analytics")
operator_sidebar()
page_header("Analytics", "What has been scanned, and who did what.")

store = get_document_store()

try:
    mode = st.segmented_control("View", ["Documents", "Templates", "Audit log"], default="Documents")
except AttributeError:
    # Fallback for older versions
    mode = st.radio("View", ["Documents", "Templates", "Audit log"], horizontal=True, label_visibility="collapsed")

# -------------------------
# DOCUMENTS
# -------------------------
if mode == "Documents":
    stats = store.get_document_statistics()
    col1, col2, col3 = st.columns(3)
    col1.metric("Documents", stats["total_documents"])
    col2.metric("This month", stats["documents_this_month"])
    col3.metric("Avg. confidence", f"{stats['average_confidence']:.0%}")

    if stats["total_documents"]:
        c1, c2 = st.columns(2)
        with c1:
            st.subheader("By type")
            st.bar_chart(pd.Series(stats["documents_by_type"], name="documents"))
        with c2:
            st.subheader("By status")
            st.bar_chart(pd.Series(stats["documents_by_status"], name="documents"))

        st.subheader("Latest documents (10)")
        latest = store.get_all_documents()[:10]
        st.dataframe(
            [
                {"id": d.id, "type": d.type.name, "status": d.status.value,
                 "confidence": round(d.confidence, 2), "location": d.location, "timestamp": d.timestamp}
                for d in latest
            ],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No documents yet.")

# -------------------------
# TEMPLATES
# -------------------------
elif mode == "Templates":
    stats = store.get_template_statistics()
    col1, col2 = st.columns(2)
    col1.metric("Templates", stats["total_templates"])
    col2.metric("Avg. fields", f"{stats['average_fields_per_template']:.1f}")
    st.bar_chart(pd.Series(stats["templates_by_category"], name="templates"))

# -------------------------
# AUDIT LOG
# -------------------------
else:
    limit = st.slider("Entries", 20, 500, 100, 20)
    logs = store.get_audit_logs(limit)
    if not logs:
        st.info("No audit entries yet.")
    else:
        df = pd.DataFrame(logs)
        actions = sorted(df["action"].unique())
        picked = st.multiselect("Actions", actions, default=actions)
        df = df[df["action"].isin(picked)]
        df["details"] = df["details"].astype(str)
        st.dataframe(df[["timestamp", "user_id", "action", "resource", "resource_id", "details"]],
                     use_container_width=True, hide_index=True)
