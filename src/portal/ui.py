# portal/ui.py
from __future__ import annotations
import re
from datetime import datetime
import streamlit as st
from contextlib import contextmanager
from .menu import MENU

DEFAULT_LOCATION = "Head Office"


def inject_styles() -> None:
    """Base styles shared by all pages (sidebar + headers inside cards)."""
    st.markdown(
        """
        <style>
          /* Card header/subtitle (the box is provided by st.container(border=True)) */
          .sp-card-header { font-weight: 700; margin: .15rem 0 .35rem; }
          .sp-card-sub { color: var(--sp-muted); font-size:.95rem; margin-top:-.2rem; margin-bottom:.35rem; }

          /* Sidebar look */
          [data-testid="stSidebar"] { padding-top: .8rem; }
          .sp-menu h3 {
            margin: 0 0 .75rem; font-size: 1rem; letter-spacing:.02em;
            text-transform: uppercase; opacity:.7;
          }
          .sp-menu .section { margin-top: .5rem; margin-bottom: .25rem; font-weight: 700; }

          /* Status pills on document rows */
          .sp-pill { display:inline-block; padding:.1rem .55rem; border-radius:999px; font-size:.8rem; font-weight:600; }
          .sp-pill.pending   { background:#FEF3C7; color:#92400E; }
          .sp-pill.finalized { background:#D1FAE5; color:#065F46; }
          .sp-pill.rejected  { background:#FEE2E2; color:#991B1B; }

          /* Active page link (disabled=True) */
          [data-testid="stPageLinkContainer"] > a,
          [data-testid="stPageLinkContainer"] > button { border-radius: 10px; }
          [data-testid="stPageLinkContainer"] > a[aria-disabled="true"],
          [data-testid="stPageLinkContainer"] > button[disabled]{
              background: var(--sp-primary) !important;
              color: #fff !important;
              opacity: 1 !important;
          }
        </style>
        """,
        unsafe_allow_html=True,
    )


@contextmanager
def card(title: str, subtitle: str | None = None, *, border: bool = True):
    """Consistent panel used across pages."""
    with st.container(border=border):
        st.markdown(f'<div class="sp-card-header">{title}</div>', unsafe_allow_html=True)
        if subtitle:
            st.markdown(f'<div class="sp-card-sub">{subtitle}</div>', unsafe_allow_html=True)
        yield


def status_pill(status: str) -> str:
    return f'<span class="sp-pill {status}">{status.upper()}</span>'


def render_sidebar(active: str) -> None:
    """Build the left menu from MENU and highlight the active leaf."""
    with st.sidebar:
        st.markdown('<div class="sp-menu"><h3>SPARK</h3></div>', unsafe_allow_html=True)

        for item in MENU:
            label = item["label"]
            path = item.get("path")
            children = item.get("children", [])

            if path is None and children:
                st.markdown(f'<div class="section">{label}</div>', unsafe_allow_html=True)
                for child in children:
                    clabel, cpath = child["label"], child["path"]
                    st.page_link(cpath, label=clabel, disabled=(active == clabel))
                st.markdown("")  # spacer
            else:
                st.page_link(path, label=label, disabled=(active == label))


def is_valid_operator_id(value: str) -> bool:
    return bool(re.match(r"^[A-Za-z0-9_.@-]{2,64}$", value or ""))


def operator_sidebar() -> tuple[str, str]:
    """Operator id + station, kept in session_state for every page of the session."""
    with st.sidebar:
        st.markdown('<div class="sp-menu"><div class="section">Operator</div></div>', unsafe_allow_html=True)
        user_id = st.text_input(
            "Operator ID",
            value=st.session_state.get("user_id", ""),
            placeholder="e.g. pc1234",
        )
        location = st.text_input(
            "Station / location",
            value=st.session_state.get("location", DEFAULT_LOCATION),
        )

    if user_id and is_valid_operator_id(user_id.strip()):
        st.session_state["user_id"] = user_id.strip()
    elif user_id:
        st.sidebar.warning("Operator ID: letters, digits and . _ - @ only.")
    st.session_state["location"] = (location or DEFAULT_LOCATION).strip()

    return st.session_state.get("user_id", "anonymous"), st.session_state["location"]


def _parse_date(value):
    for fmt in ("%d-%m-%Y", "%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y"):
        try:
            return datetime.strptime(str(value).strip(), fmt).date()
        except ValueError:
            continue
    return None


def template_form_fields(template, values: dict, key_prefix: str) -> dict:
    """One input per template field; returns the edited values (dates as dd-mm-yyyy)."""
    out = {}
    for f in template.template:
        label = f"{f.label} *" if f.required else f.label
        current = values.get(f.id, "")
        key = f"{key_prefix}_{f.id}"

        if f.type == "select" and f.options:
            options = [""] + list(f.options)
            if current and current not in options:
                options.append(str(current))
            out[f.id] = st.selectbox(label, options, index=options.index(current) if current in options else 0, key=key)
        elif f.type == "textarea":
            out[f.id] = st.text_area(label, value=str(current or ""), key=key)
        elif f.type == "number":
            out[f.id] = st.text_input(label, value=str(current or ""), key=key, help="Numbers only")
        elif f.type == "date":
            parsed = _parse_date(current) if current else None
            if current and parsed is None:
                # keep what the model read when it is not a date we understand
                out[f.id] = st.text_input(label, value=str(current), key=key, help="dd-mm-yyyy")
            else:
                picked = st.date_input(label, value=parsed, format="DD-MM-YYYY", key=key)
                out[f.id] = picked.strftime("%d-%m-%Y") if picked else ""
        else:
            out[f.id] = st.text_input(label, value=str(current or ""), key=key)
    return out
