# src/utils/supabase_utils.py
"""
Secrets/settings helper + Supabase client creator.

Resolution order for secrets:
1) st.secrets (Streamlit Cloud / local .streamlit/secrets.toml)
2) Environment variables (.env, Docker, CI)

Aliases supported:
- SUPABASE_URL  or SUPABASE__URL
- SUPABASE_SERVICE_KEY  or SUPABASE__SUPABASE_SERVICE_KEY  or SUPABASE_KEY
- MISTRAL_API_KEY  or MISTRAL__API_KEY
"""

from __future__ import annotations

import os
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()

DEFAULT_DB_URL = "sqlite:///data/spark.db"
DEFAULT_VISION_MODEL = "pixtral-12b-2409"
DEFAULT_UPLOAD_BUCKET = "uploads"
DEFAULT_SESSION_HOURS = 24
DEFAULT_PUBLIC_BASE_URL = "http://localhost:8501"

_TRUTHY = ("1", "true", "yes", "y", "on")


def sget(*names: str) -> str | None:
    """
    Return the first non-empty value among names,
    checking Streamlit secrets first, then environment.
    """
    for n in names:
        # st.secrets raises when no secrets.toml exists at all
        try:
            if hasattr(st, "secrets") and n in st.secrets:
                v = st.secrets[n]
                if v:
                    return str(v)
        except Exception:
            pass
        v = os.getenv(n)
        if v:
            return v
    return None


def _missing_msg(missing: list[str]) -> str:
    return (
        "Missing required secrets: "
        + ", ".join(missing)
        + "\nAdd them to .streamlit/secrets.toml or export them as env vars.\n"
        "Aliases supported for Supabase: SUPABASE__URL, SUPABASE__SUPABASE_SERVICE_KEY."
    )


def supabase_configured() -> bool:
    return bool(
        sget("SUPABASE_URL", "SUPABASE__URL")
        and sget("SUPABASE_SERVICE_KEY", "SUPABASE__SUPABASE_SERVICE_KEY", "SUPABASE_KEY")
    )


@st.cache_resource(show_spinner=False)
def get_supabase_client() -> Client:
    """Create a cached Supabase client."""
    url = sget("SUPABASE_URL", "SUPABASE__URL")
    key = sget("SUPABASE_SERVICE_KEY", "SUPABASE__SUPABASE_SERVICE_KEY", "SUPABASE_KEY")

    missing = []
    if not url:
        missing.append("SUPABASE_URL")
    if not key:
        missing.append("SUPABASE_SERVICE_KEY")
    if missing:
        raise RuntimeError(_missing_msg(missing))

    return create_client(url, key)


# --- Vision model -------------------------------------------------------------

def get_mistral_api_key(required: bool = True) -> str | None:
    """Returns Mistral key from secrets/env; raises if required and missing."""
    key = sget("MISTRAL_API_KEY", "MISTRAL__API_KEY")
    if required and not key:
        raise RuntimeError("Missing Mistral API key. Set MISTRAL_API_KEY in secrets or env.")
    return key


def get_vision_model() -> str:
    return sget("SPARK_VISION_MODEL") or DEFAULT_VISION_MODEL


# --- App settings -------------------------------------------------------------

def get_local_db_url() -> str:
    return sget("SPARK_DB_URL") or DEFAULT_DB_URL


def get_key_path(db_url: str | None = None) -> Path:
    """Where a generated encryption key lives: next to the SQLite file."""
    db_url = db_url or get_local_db_url()
    if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
        return Path(db_url[len("sqlite:///"):]).parent / ".spark.key"
    return Path("data") / ".spark.key"


def get_encryption_key() -> str | None:
    return sget("SPARK_ENCRYPTION_KEY")


def get_upload_bucket() -> str:
    return sget("SPARK_UPLOAD_BUCKET") or DEFAULT_UPLOAD_BUCKET


def get_session_hours() -> int:
    raw = sget("SPARK_SESSION_HOURS")
    try:
        return int(raw) if raw else DEFAULT_SESSION_HOURS
    except ValueError:
        return DEFAULT_SESSION_HOURS


def get_public_base_url() -> str:
    return (sget("SPARK_PUBLIC_BASE_URL") or DEFAULT_PUBLIC_BASE_URL).rstrip("/")


def is_sync_enabled() -> bool:
    return (sget("SPARK_SUPABASE_SYNC") or "0").lower() in _TRUTHY
