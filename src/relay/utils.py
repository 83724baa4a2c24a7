"""Utility functions for the relay."""

import hashlib
from typing import Optional
from urllib.parse import urlparse, urlunparse


FINGERPRINT_LENGTH = 12


def credential_fingerprint(token: Optional[str]) -> str:
    """Return a short, non-reversible fingerprint of a credential.

    The fingerprint lets operators correlate log lines and diagnostic
    headers with a given key without ever exposing the key itself.

    Examples:
        "" -> ""
        "sk-test" -> first 12 hex chars of sha256("sk-test")

    Args:
        token: Raw credential, or None.

    Returns:
        Lowercase hex digest prefix, or an empty string when no credential.
    """
    if not token:
        return ""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def normalize_base_url(url: Optional[str]) -> str:
    """Normalize a provider base URL.

    Endpoint paths are appended to the base, so any trailing slash would
    produce ``//`` in the final URL. Scheme, host and query are kept.
    """
    raw = (url or "").strip()
    if not raw:
        return raw

    parsed = urlparse(raw)
    parsed = parsed._replace(path=(parsed.path or "").rstrip("/"))
    return urlunparse(parsed).rstrip("/")


__all__ = ["credential_fingerprint", "normalize_base_url", "FINGERPRINT_LENGTH"]
