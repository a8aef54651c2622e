"""URL helpers for host permission checks."""

from typing import Optional
from urllib.parse import urlparse, urlunparse


def origin_pattern(url: str) -> Optional[str]:
    """
    Build the host permission pattern covering a page's origin.

    Returns None for pages that cannot carry host permissions
    (empty URLs, browser-internal schemes).

    Example:
        https://app.com/page?tab=1#section
        -> https://app.com/*
    """
    if not url:
        return None

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https", "file", "desktop") or not (
        parsed.netloc or parsed.scheme == "file"
    ):
        return None

    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        '/*',
        '',  # No params
        '',  # No query
        ''   # No fragment
    ))
