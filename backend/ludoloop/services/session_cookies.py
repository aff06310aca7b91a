"""
LudoLoop Backend — Session Cookie Codec
=========================================

What:  Reads and writes the session token pair stored in browser cookies.
Why:   The browser owns the session. The hosted SDKs persist it in cookies
       with a specific layout, and the server must read it and write refreshed
       sessions back in the same layout.
How:   Pure functions over plain mappings; no request/response objects here.

Cookie Layout:
    Name:   sb-<project-ref>-auth-token
    Value:  "base64-" + base64url(JSON session)   (current SDKs)
            raw JSON session                       (older SDKs)
    Chunks: values longer than CHUNK_SIZE are split over
            sb-<ref>-auth-token.0, sb-<ref>-auth-token.1, ...

    Older deployments stored the tokens separately as sb-access-token /
    sb-refresh-token; those are read as a fallback.

Session JSON (subset we rely on):
    {"access_token": "...", "refresh_token": "...", "expires_at": 1700000000,
     "expires_in": 3600, "token_type": "bearer", "user": {...}}
"""

import base64
import binascii
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

BASE64_PREFIX = "base64-"
CHUNK_SIZE = 3180

LEGACY_ACCESS_COOKIE = "sb-access-token"
LEGACY_REFRESH_COOKIE = "sb-refresh-token"


@dataclass(frozen=True)
class SessionTokenPair:
    """
    Access + refresh token issued by the auth provider.

    expires_at is a UNIX timestamp; None means unknown, in which case the
    access token is presented to the provider and the provider decides.
    """

    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None
    user: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def is_expired(self, margin_seconds: int = 0, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return self.expires_at <= current + margin_seconds

    @classmethod
    def from_session(cls, session: Mapping[str, Any], now: Optional[float] = None) -> "SessionTokenPair":
        """
        Build a pair from a provider session payload.

        Raises KeyError/ValueError when a token is missing.
        """
        access_token = session["access_token"]
        refresh_token = session["refresh_token"]
        if not access_token or not refresh_token:
            raise ValueError("session payload without tokens")

        expires_at = session.get("expires_at")
        if expires_at is None and session.get("expires_in") is not None:
            current = time.time() if now is None else now
            expires_at = int(current) + int(session["expires_in"])

        raw = dict(session)
        if expires_at is not None:
            expires_at = int(expires_at)
            raw["expires_at"] = expires_at
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            user=session.get("user"),
            raw=raw,
        )

    def to_session(self) -> Dict[str, Any]:
        payload = dict(self.raw)
        payload["access_token"] = self.access_token
        payload["refresh_token"] = self.refresh_token
        if self.expires_at is not None:
            payload["expires_at"] = self.expires_at
        if self.user is not None:
            payload["user"] = self.user
        return payload


# ══════════════════════════════════════════════════════════════════════════
# Reading
# ══════════════════════════════════════════════════════════════════════════

def combine_chunks(cookies: Mapping[str, str], name: str) -> Optional[str]:
    """Return the cookie value for `name`, joining `name.0`, `name.1`, … when chunked."""
    if name in cookies:
        return cookies[name]

    parts: List[str] = []
    index = 0
    while f"{name}.{index}" in cookies:
        parts.append(cookies[f"{name}.{index}"])
        index += 1
    return "".join(parts) if parts else None


def decode_session_value(value: str) -> Optional[Dict[str, Any]]:
    """Decode a stored cookie value into the session dict, or None if unreadable."""
    if value.startswith(BASE64_PREFIX):
        encoded = value[len(BASE64_PREFIX):]
        padded = encoded + "=" * (-len(encoded) % 4)
        try:
            value = base64.urlsafe_b64decode(padded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("Session cookie has an undecodable base64 payload")
            return None
    try:
        decoded = json.loads(value)
    except ValueError:
        logger.warning("Session cookie does not contain JSON")
        return None
    return decoded if isinstance(decoded, dict) else None


def read_session(
    cookies: Mapping[str, str],
    cookie_name: str,
    now: Optional[float] = None,
) -> Optional[SessionTokenPair]:
    """
    Extract the session token pair from request cookies.

    Lookup order: combined (possibly chunked) session cookie, then the legacy
    sb-access-token / sb-refresh-token pair. Returns None when no usable
    session is present.
    """
    stored = combine_chunks(cookies, cookie_name)
    if stored:
        session = decode_session_value(stored)
        if session is not None:
            try:
                return SessionTokenPair.from_session(session, now=now)
            except (KeyError, TypeError, ValueError):
                logger.warning("Session cookie %s is missing tokens", cookie_name)

    access = cookies.get(LEGACY_ACCESS_COOKIE)
    refresh = cookies.get(LEGACY_REFRESH_COOKIE)
    if access and refresh:
        return SessionTokenPair(access_token=access, refresh_token=refresh)
    return None


# ══════════════════════════════════════════════════════════════════════════
# Writing
# ══════════════════════════════════════════════════════════════════════════

def encode_session_value(pair: SessionTokenPair) -> str:
    payload = json.dumps(pair.to_session(), separators=(",", ":"))
    encoded = base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")
    return BASE64_PREFIX + encoded


def chunk_value(name: str, value: str, chunk_size: int = CHUNK_SIZE) -> Dict[str, str]:
    """Split a cookie value into {name: value} or {name.0: ..., name.1: ...}."""
    if len(value) <= chunk_size:
        return {name: value}
    return {
        f"{name}.{i}": value[start:start + chunk_size]
        for i, start in enumerate(range(0, len(value), chunk_size))
    }


def session_cookie_names(cookies: Mapping[str, str], cookie_name: str) -> List[str]:
    """Every request cookie holding (part of) the combined session cookie."""
    return [
        name for name in cookies
        if name == cookie_name
        or (name.startswith(cookie_name + ".") and name[len(cookie_name) + 1:].isdigit())
    ]


def auth_cookie_names(
    cookies: Mapping[str, str],
    prefix: str,
    fixed_names: List[str],
) -> List[str]:
    """
    Every auth cookie that must go when a session is invalidated.

    That is the fixed legacy names (always, even if absent: deleting a cookie
    the browser no longer has is harmless) plus every request cookie that
    starts with `prefix` and contains "auth-token".
    """
    names = list(fixed_names)
    for name in cookies:
        if name.startswith(prefix) and "auth-token" in name and name not in names:
            names.append(name)
    return names
