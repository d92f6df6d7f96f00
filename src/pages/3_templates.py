# src/pages/3_templates.py
import pandas as pd
import streamlit as st

from portal.theme import page_setup, page_header
from portal.ui import card, operator_sidebar
from tools.document_schema import DocumentTemplate, TemplateField
from utils.exceptions import TemplateError
from utils.local_store import get_document_store
from utils import templates_catalog as catalog

FIELD_TYPES = ["text", "select", "date", "number", "textarea"]

page_setup("Templates", "SPARK · Templates")
user_id, _ = operator_sidebar()
page_header("Templates", "Field layouts used to review and finalize documents.")

store = get_document_store()


def _fields_frame(template: DocumentTemplate | None) -> pd.DataFrame:
    rows = [
        {
            "id": f.id,
            "label": f.label,
            "type": f.type,
            "required": f.required,
            "options": ", ".join(f.options or []),
        }
        for f in (template.template if template else [])
    ]
    return pd.DataFrame(rows, columns=["id", "label", "type", "required", "options"])


def _fields_from_frame(df: pd.DataFrame) -> list[TemplateField]:
    fields = []
    for row in df.to_dict("records"):
        label = str(row.get("label") or "").strip()
        if not label:
            continue
        fid = str(row.get("id") or "").strip() or catalog.make_template_id(label, [f.id for f in fields])
        ftype = row.get("type") if row.get("type") in FIELD_TYPES else "text"
        options = [o.strip() for o in str(row.get("options") or "").split(",") if o.strip()]
        fields.append(TemplateField(
            id=fid,
            label=label,
            type=ftype,
            required=bool(row.get("required")),
            options=options if ftype == "select" else None,
        ))
    return fields


def _editor(df: pd.DataFrame, key: str) -> pd.DataFrame:
    return st.data_editor(
        df,
        key=key,
        num_rows="dynamic",
        use_container_width=True,
        hide_index=True,
        column_config={
            "type": st.column_config.SelectboxColumn("type", options=FIELD_TYPES, default="text"),
            "required": st.column_config.CheckboxColumn("required", default=False),
            "options": st.column_config.TextColumn("options", help="Comma separated, select fields only"),
        },
    )


tab_browse, tab_new = st.tabs(["Browse", "New template"])

with tab_browse:
    query = st.text_input("Search templates", placeholder="name, category or field label")
    found = store.search_templates(query)
    stats = store.get_template_statistics()
    s1, s2 = st.columns(2)
    s1.metric("Templates", stats["total_templates"])
    s2.metric("Avg. fields", f"{stats['average_fields_per_template']:.1f}")

    for t in found:
        badge = "built-in" if catalog.is_built_in(t.id) else "custom"
        with st.expander(f"{t.name} · {t.category} · {len(t.template)} fields · {badge}"):
            edited = _editor(_fields_frame(t), key=f"tpl_{t.id}")
            c1, c2 = st.columns(2)
            name = c1.text_input("Name", value=t.name, key=f"tpl_name_{t.id}")
            category = c2.text_input("Category", value=t.category, key=f"tpl_cat_{t.id}")

            b1, b2 = st.columns(2)
            if b1.button("💾 Save", key=f"tpl_save_{t.id}"):
                fields = _fields_from_frame(edited)
                if not fields:
                    st.error("A template needs at least one field.")
                else:
                    store.update_template(t.id, {"name": name, "category": category, "template": fields},
                                          user_id=user_id)
                    st.success("Template saved.")
                    st.rerun()

            is_override = catalog.is_built_in(t.id) and t != catalog.get_built_in(t.id)
            if not catalog.is_built_in(t.id) or is_override:
                label = "↩️ Reset to built-in" if is_override else "🗑️ Delete"
                if b2.button(label, key=f"tpl_del_{t.id}"):
                    try:
                        store.delete_template(t.id, user_id=user_id)
                    except TemplateError as e:
                        st.error(e.message)
                    else:
                        st.rerun()

    st.download_button("⬇️ Export templates", store.export_templates(), file_name="spark_templates.json",
                       mime="application/json")

with tab_new:
    with card("New template", "Custom document types are stored locally alongside the built-ins."):
        name = st.text_input("Name", key="new_tpl_name")
        category = st.text_input("Category", key="new_tpl_category", placeholder="Leave, Disciplinary…")
        edited = _editor(_fields_frame(None), key="new_tpl_fields")
        if st.button("Create template", type="primary", disabled=not name.strip()):
            fields = _fields_from_frame(edited)
            if not fields:
                st.error("Add at least one field.")
            else:
                template = DocumentTemplate(
                    id=catalog.make_template_id(name, [t.id for t in store.get_all_templates()]),
                    name=name.strip(),
                    category=category.strip() or "General",
                    template=fields,
                )
                try:
                    store.save_template(template, user_id=user_id)
                except TemplateError as e:
                    st.error(e.message)
                else:
                    st.success(f"Created {template.name}.")
