"""
Stable image identifiers.

Notion hands out signed storage URLs whose query string (the signature)
changes every time a page is read. The identifiers built here stay the same
across those rotations so cached bytes can be found again.
"""

import hashlib
import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")

IMAGE_KEY_PREFIX = "images/"
IMAGE_KEY_SUFFIX = ".jpg"


def strip_query(url: str) -> str:
    """Drop the query string and fragment from a URL."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _uuid_before_filename(url: str) -> Optional[str]:
    # Notion storage paths look like /{workspace}/{file-id}/{filename}
    segments = [s for s in urlsplit(url).path.split("/") if s]
    for segment in reversed(segments[:-1]):
        if UUID_PATTERN.match(segment):
            return segment.lower()
    return None


def _hash_url(url: str) -> str:
    return hashlib.sha256(strip_query(url).encode("utf-8")).hexdigest()[:32]


def derive_stable_id(source_url: str, hint: Optional[str] = None) -> str:
    """
    Derive an identifier that survives signature rotation.

    Order of preference:
    1. ``hint`` supplied by the caller (e.g. ``{page_id}-{index}``)
    2. UUID path segment immediately before the filename
    3. sha256 of the URL without its query string

    Args:
        source_url: Non-empty image URL, possibly signed
        hint: Caller-known stable identifier

    Returns:
        Path-safe identifier
    """
    if hint:
        return _UNSAFE_CHARS.sub("_", hint)

    file_id = _uuid_before_filename(source_url)
    if file_id:
        return file_id

    return _hash_url(source_url)


def image_key(stable_id: str) -> str:
    """Durable store key for an image: ``images/{stable_id}.jpg``."""
    return f"{IMAGE_KEY_PREFIX}{stable_id}{IMAGE_KEY_SUFFIX}"


def is_valid_stable_id(stable_id: str) -> bool:
    """True if ``stable_id`` is safe to embed in a store key."""
    return bool(stable_id) and bool(_SAFE_ID_PATTERN.match(stable_id))
