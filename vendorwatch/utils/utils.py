import base64
import json
import logging
import re
from io import BytesIO
from typing import Any
from urllib.parse import urlsplit

from PIL import Image

logger = logging.getLogger(__name__)

STATIC_ASSET_PATTERN = re.compile(
    r"\.(js|mjs|css|png|jpe?g|gif|svg|ico|webp|woff2?|ttf|eot|map)$", re.IGNORECASE
)


def url_path(url: str) -> str:
    """Path component of ``url`` with the query string and fragment removed."""
    if not url:
        return ""
    if "://" not in url and not url.startswith("/"):
        url = "/" + url
    path = urlsplit(url).path or "/"
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def is_static_asset(url: str) -> bool:
    return bool(STATIC_ASSET_PATTERN.search(url_path(url)))


def is_valid_base64_image(data: str | None) -> bool:
    if not data:
        return False
    try:
        decoded = base64.b64decode(data, validate=True)
        Image.open(BytesIO(decoded))
        return True
    except Exception:
        return False


def loads_tool_json(text: str | None) -> Any:
    """Parse a JSON value out of automation tool text.

    Evaluate results sometimes arrive wrapped in a code fence or encoded
    twice (a JSON string containing JSON). Returns None when nothing parses.
    """
    if text is None:
        return None
    text = text.strip()
    fenced = re.search(r"```(?:json)?\s*\n(.*?)\n\s*```", text, re.DOTALL)
    if fenced:
        text = fenced.group(1).strip()

    value: Any = text
    for _ in range(2):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            if value is text:
                logger.debug("Tool text is not JSON: %s", text[:200])
                return None
            break
    return value


def truncate(text: str | None, limit: int) -> str | None:
    if text is None or len(text) <= limit:
        return text
    return text[:limit] + "..."
