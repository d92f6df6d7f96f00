# src/utils/qr_utils.py
from urllib.parse import urlencode, quote

import requests

from utils.logging_config import get_logger

logger = get_logger(__name__)

QR_API_URL = "https://api.qrserver.com/v1/create-qr-code/"


def build_mobile_upload_url(base_url: str, session_id: str) -> str:
    """Address the phone opens after scanning, e.g. http://host:8501/mobile_upload?session=..."""
    return f"{base_url.rstrip('/')}/mobile_upload?session={quote(session_id, safe='')}"


def build_qr_image_url(
    data: str,
    size: int = 256,
    margin: int = 2,
    dark: str = "1e3a8a",
    light: str = "ffffff",
) -> str:
    params = {
        "size": f"{size}x{size}",
        "data": data,
        "margin": margin,
        "color": dark.lstrip("#"),
        "bgcolor": light.lstrip("#"),
        "format": "png",
    }
    return f"{QR_API_URL}?{urlencode(params)}"


def fetch_qr_png(data: str, **kwargs) -> bytes:
    url = build_qr_image_url(data, **kwargs)
    resp = requests.get(url, timeout=15)
    resp.raise_for_status()
    logger.debug("qr_fetched", bytes=len(resp.content))
    return resp.content
