"""Feed URL validation."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

VALID_URL_SCHEMES = {"http", "https"}


@dataclass(frozen=True)
class UrlValidation:
    valid: bool
    errors: tuple[str, ...] = ()


def validate_feed_url(url: object) -> UrlValidation:
    if not isinstance(url, str) or not url.strip():
        return UrlValidation(valid=False, errors=("URL is required and must be a string",))

    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return UrlValidation(valid=False, errors=("Invalid URL format",))

    if not parsed.scheme or not parsed.netloc:
        return UrlValidation(valid=False, errors=("Invalid URL format",))
    if parsed.scheme.lower() not in VALID_URL_SCHEMES:
        return UrlValidation(valid=False, errors=("URL must use HTTP or HTTPS protocol",))
    return UrlValidation(valid=True)
