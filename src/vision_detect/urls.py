"""Input reference helpers.

Provides:
- to_direct_url: sharing link -> direct download link (Google Drive, Dropbox)
- parse_input_refs: newline/comma separated text -> list of http(s) references
- display_name: short human label for a reference
"""

import re
from urllib.parse import urlsplit

_DRIVE_FILE_RE = re.compile(r"/file/d/([^/?#]+)")
_SPLIT_RE = re.compile(r"[\r\n,]+")


def is_http_url(ref: str | None) -> bool:
    """True for an absolute http:// or https:// reference with a host."""
    if not ref or not ref.strip():
        return False
    try:
        parts = urlsplit(ref.strip())
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def to_direct_url(url: str) -> str:
    """Convert a sharing link into a directly fetchable one.

    Google Drive `.../file/d/<id>/view` becomes
    `https://drive.google.com/uc?export=download&id=<id>`, Dropbox `?dl=0`
    becomes `?dl=1`. Anything else is returned unchanged.
    """
    if "drive.google.com" in url and "/file/d/" in url:
        match = _DRIVE_FILE_RE.search(url)
        if match:
            return f"https://drive.google.com/uc?export=download&id={match.group(1)}"

    if "dropbox.com" in url and "?dl=0" in url:
        return url.replace("?dl=0", "?dl=1")

    return url


def parse_input_refs(text: str | None) -> list[str]:
    """Split text on newlines and commas, keep http(s) references in order.

    Tokens that are not absolute http/https references are dropped silently.
    """
    if not text or not text.strip():
        return []
    tokens = (token.strip() for token in _SPLIT_RE.split(text))
    return [token for token in tokens if is_http_url(token)]


def display_name(url: str) -> str:
    match = _DRIVE_FILE_RE.search(url)
    if "drive.google.com" in url and match:
        return f"DriveVideo_{match.group(1)[:8]}"

    try:
        path = urlsplit(url).path
    except ValueError:
        return "Video"
    name = path.rstrip("/").rsplit("/", 1)[-1]
    return name or "Video"
