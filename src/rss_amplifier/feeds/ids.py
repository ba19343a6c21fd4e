"""Deterministic feed id derivation shared by the scheduler and feed store."""

from __future__ import annotations

import base64
import re

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


def feed_id_for_url(url: str) -> str:
    """Return the stable id for a feed URL (base64 of the URL, alphanumerics only)."""
    encoded = base64.b64encode(url.encode("utf-8")).decode("ascii")
    return _NON_ALNUM_RE.sub("", encoded)
