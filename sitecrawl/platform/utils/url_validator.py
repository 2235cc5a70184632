import re
from typing import Tuple
from urllib.parse import urlsplit, urlunsplit

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")

# Matches the pages.url column width
MAX_URL_LENGTH = 2048


def normalize_url(url: str) -> str:
    """
    Canonical page identity.

    A missing scheme defaults to https; an explicit http:// is kept as is.
    Scheme and host are lower-cased, the fragment is dropped and trailing
    slashes on the path are stripped, so "example.com", "https://example.com/"
    and "https://EXAMPLE.com" are the same page.
    """
    url = url.strip()
    if url.startswith("//"):
        url = "https:" + url
    elif not _SCHEME_RE.match(url):
        url = "https://" + url

    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def validate_url(url: str) -> Tuple[bool, str, str]:
    """Returns (is_valid, normalized_url, error_message)."""
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    try:
        normalized_url = normalize_url(url)
        parsed = urlsplit(normalized_url)
        hostname = parsed.hostname
    except ValueError as e:
        return False, url.strip(), f"URL parsing error: {str(e)}"

    if parsed.scheme not in ("http", "https"):
        return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

    if not hostname:
        return False, normalized_url, "Invalid URL format: missing domain"

    if len(normalized_url) > MAX_URL_LENGTH:
        return False, normalized_url, f"URL is too long (max {MAX_URL_LENGTH} characters)"

    return True, normalized_url, ""
