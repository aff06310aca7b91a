"""
LudoLoop Backend — Middleware Route Matcher
=============================================

What:  Decides which request paths the security/session pipeline runs for.
Why:   Static assets and images never carry a page render or an API call, so
       refreshing sessions (a provider round-trip) for them is pure overhead.

Excluded:
    /_next/static/…, /_next/image…, /static/…   build assets
    /favicon.ico
    anything ending in .svg .png .jpg .jpeg .gif .webp
"""

import re
from typing import Pattern

EXCLUDED_PATHS: Pattern[str] = re.compile(
    r"^/(?:_next/static|_next/image|static/|favicon\.ico)"
    r"|\.(?:svg|png|jpg|jpeg|gif|webp)$",
    re.IGNORECASE,
)


def should_process(path: str) -> bool:
    """True when the pipeline must run for `path`."""
    return EXCLUDED_PATHS.search(path) is None
