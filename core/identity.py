"""
Task identity helpers.

A task is identified by the (email, normalized URL) pair so that resubmitting
the same request always collides onto the same id.
"""

import hashlib
from urllib.parse import urlsplit


def normalize_url(url: str) -> str:
    """
    Canonical form used for identity and crawling.

    Lowercases scheme, host and path; drops port, query and fragment. Bare
    hosts ("example.com") are assumed to be https.
    """
    raw = (url or "").strip()
    if not raw:
        return raw

    if "://" not in raw:
        raw = f"https://{raw}"

    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw.lower()

    if not parts.scheme or not parts.hostname:
        return raw.lower()

    path = parts.path or "/"
    return f"{parts.scheme}://{parts.hostname}{path}".lower()


def generate_task_id(email: str, normalized_url: str) -> str:
    """Stable 10-character id for an (email, normalized URL) pair."""
    data = f"{email}:{normalized_url}"
    return hashlib.md5(data.encode("utf-8")).hexdigest()[:10]


def hostname_of(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()
