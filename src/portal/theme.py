# portal/theme.py
from __future__ import annotations
import streamlit as st
from portal.ui import inject_styles as base_styles, render_sidebar
from portal.autostart_api import ensure_fastapi
from utils.logging_config import configure_logging

# ---- Theme tokens (edit here to restyle the whole app) -----------------------
THEME = {
    "font_family": "Inter, system-ui, -apple-system, Segoe UI, Roboto",
    "bg": "#F3F4F6",            # app background
    "panel": "#FFFFFF",         # card background
    "primary": "#1E3A8A",       # same navy as the QR codes
    "text": "#0F172A",
    "muted": "#64748B",
    "radius": "12px",
    "shadow": "0 4px 18px rgba(2, 6, 23, 0.06)",
}


def _inject_theme_css() -> None:
    """Define global CSS variables + primitives, then load base component styles."""
    st.markdown(
        f"""
        <style>
          :root {{
            --sp-bg: {THEME['bg']};
            --sp-panel: {THEME['panel']};
            --sp-primary: {THEME['primary']};
            --sp-text: {THEME['text']};
            --sp-muted: {THEME['muted']};
            --sp-radius: {THEME['radius']};
            --sp-shadow: {THEME['shadow']};
            --sp-font: {THEME['font_family']};
          }}
          html, body, [data-testid="stAppViewContainer"] {{
            background: var(--sp-bg) !important;
            color: var(--sp-text);
            font-family: var(--sp-font);
          }}
          .stButton > button[kind="primary"] {{
            background: var(--sp-primary);
            color:#fff; border:0; border-radius: var(--sp-radius);
            padding:.6rem 1rem; font-weight:600;
          }}
          .sp-hero h1 {{
            font-size:3.0rem; line-height:1.05; font-weight:800; letter-spacing:.01em;
            text-transform:uppercase; margin:0;
          }}
          .sp-hero .tagline {{ margin-top:.35rem; font-size:1.05rem; color:var(--sp-muted); }}
          .sp-header h1 {{
            font-size:2.0rem; line-height:1.1; font-weight:800; text-transform:uppercase;
            margin:.25rem 0;
          }}
          .sp-header .tag {{ opacity:.75; margin-top:.15rem; }}
        </style>
        """,
        unsafe_allow_html=True,
    )
    base_styles()


def page_setup(active: str, page_title: str = "SPARK Document Scanner", *, layout: str = "wide", menu: bool = True) -> None:
    st.set_page_config(page_title=page_title, page_icon="📄", layout=layout)
    configure_logging()
    _inject_theme_css()
    if menu:
        render_sidebar(active)

    # Auto-start FastAPI (idempotent; cached)
    info = ensure_fastapi()
    if info["status"] == "failed":
        st.sidebar.caption(f"API: failed → {info['url']}")


def hero(title_html: str, tagline: str, cta_text: str | None = None, cta_page: str | None = None) -> None:
    """Landing hero block (HTML allowed in title_html for line breaks)."""
    st.markdown(
        f'<div class="sp-hero"><h1>{title_html}</h1><div class="tagline">{tagline}</div></div>',
        unsafe_allow_html=True,
    )
    if cta_text and cta_page:
        if st.button(cta_text, key="sp-hero-cta", type="primary"):
            st.switch_page(cta_page)


def page_header(title: str, tag: str = "") -> None:
    """Uniform page header for all non-landing pages."""
    st.markdown(
        f'<div class="sp-header"><h1>{title}</h1><div class="tag">{tag}</div></div>',
        unsafe_allow_html=True,
    )
