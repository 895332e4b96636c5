"""URL detection for the anti-link filter."""

from __future__ import annotations

import re

_LINK_RE = re.compile(r"https?://\S+", re.IGNORECASE)


def contains_link(text: str) -> bool:
    """Return True if ``text`` contains an http(s) URL."""
    return bool(_LINK_RE.search(text or ""))
