"""
LudoLoop Backend — Security Event Detector
============================================

What:  Inspects an incoming request for abuse patterns and returns tagged
       security events.
Why:   Scanners, injection probes and credential submissions should leave a
       trace in the logs even though the request itself is still served.
How:   detect_security_events() is a pure function of a RequestFacts snapshot:
       no I/O, no mutation, no clock reads beyond the snapshot's timestamp.
       The caller (SecurityEventMiddleware) decides what to do with the events;
       today it logs them.

The rule set below is policy, not architecture: rules are plain
(facts) -> Optional[reason] functions collected in RULES and can change
independently of the pipeline.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import unquote_plus

# ── Event types ───────────────────────────────────────────────────────────
SUSPICIOUS_ACTIVITY = "suspicious_activity"
NEW_DEVICE_LOGIN = "new_device_login"
LOGIN_ATTEMPT = "login_attempt"

DEFAULT_IP = "127.0.0.1"


@dataclass(frozen=True)
class RequestFacts:
    """Immutable snapshot of the parts of a request the rules look at."""

    method: str
    path: str
    query: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    client_host: Optional[str] = None
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_request(cls, request: Any) -> "RequestFacts":
        """Snapshot a Starlette request (lower-cased header names)."""
        client = getattr(request, "client", None)
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            query=request.url.query or "",
            headers={k.lower(): v for k, v in request.headers.items()},
            client_host=client.host if client else None,
        )

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def ip_address(self) -> str:
        """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
        forwarded_for = self.headers.get("x-forwarded-for")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first
        real_ip = self.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
        return self.client_host or DEFAULT_IP

    @property
    def decoded_query(self) -> str:
        return unquote_plus(self.query)


@dataclass(frozen=True)
class SecurityEvent:
    event_type: str
    reason: str
    success: Optional[bool] = None
    data: Dict[str, Any] = field(default_factory=dict)


# ══════════════════════════════════════════════════════════════════════════
# Rules
# ══════════════════════════════════════════════════════════════════════════

AUTOMATION_MARKERS = ("bot", "crawler", "spider")
SCANNER_MARKERS = ("sqlmap", "nikto", "nmap", "masscan", "zgrab", "wpscan", "acunetix", "dirbuster")

SENSITIVE_PATH_PREFIXES = (
    "/.env",
    "/.git/",
    "/.aws/",
    "/wp-admin",
    "/wp-login.php",
    "/phpmyadmin",
    "/xmlrpc.php",
    "/server-status",
)

LOGIN_PATHS = ("/login", "/auth/v1/token", "/api/auth/login")

TRAVERSAL_PATTERN = re.compile(r"(\.\./|\.\.\\|%2e%2e(%2f|/|%5c))", re.IGNORECASE)
SQL_INJECTION_PATTERN = re.compile(
    r"(\bunion\b.+\bselect\b|'\s*or\s+'?\d+'?\s*=\s*'?\d+|;\s*(drop|delete|insert|update)\s|--\s*$|\bsleep\s*\(|\bbenchmark\s*\()",
    re.IGNORECASE,
)
SCRIPT_INJECTION_PATTERN = re.compile(r"(<\s*script|javascript:|\bon(error|load)\s*=)", re.IGNORECASE)


def _automated_client(facts: RequestFacts) -> Optional[str]:
    agent = facts.user_agent.lower()
    if any(marker in agent for marker in SCANNER_MARKERS):
        return "Request from a known vulnerability scanner"
    if any(marker in agent for marker in AUTOMATION_MARKERS):
        return "Request from automated tool or bot"
    return None


def _path_traversal(facts: RequestFacts) -> Optional[str]:
    # Decoded too: "..%2F" only becomes "../" after unquoting
    targets = (facts.path, facts.query, facts.decoded_query)
    if any(TRAVERSAL_PATTERN.search(target) for target in targets):
        return "Path traversal sequence in request"
    return None


def _injection_probe(facts: RequestFacts) -> Optional[str]:
    query = facts.decoded_query
    if not query:
        return None
    if SQL_INJECTION_PATTERN.search(query):
        return "SQL injection signature in query string"
    if SCRIPT_INJECTION_PATTERN.search(query):
        return "Script injection signature in query string"
    return None


def _sensitive_path_probe(facts: RequestFacts) -> Optional[str]:
    path = facts.path.lower()
    if any(path.startswith(prefix) for prefix in SENSITIVE_PATH_PREFIXES):
        return "Probe of a well-known sensitive path"
    return None


SuspicionRule = Callable[[RequestFacts], Optional[str]]

# First matching rule wins: one request yields at most one suspicious_activity event
RULES: Tuple[SuspicionRule, ...] = (
    _automated_client,
    _sensitive_path_probe,
    _path_traversal,
    _injection_probe,
)


def _is_login_submission(facts: RequestFacts) -> bool:
    return facts.method == "POST" and any(facts.path.startswith(p) for p in LOGIN_PATHS)


# ══════════════════════════════════════════════════════════════════════════
# Entry point
# ══════════════════════════════════════════════════════════════════════════

def detect_security_events(facts: RequestFacts) -> List[SecurityEvent]:
    """
    Return zero or more security events for one request.

    Pure: same facts in, same events out.
    """
    events: List[SecurityEvent] = []
    metadata = {
        "method": facts.method,
        "path": facts.path,
        "ip_address": facts.ip_address,
        "user_agent": facts.user_agent,
        "timestamp": facts.observed_at.isoformat(),
    }

    if _is_login_submission(facts):
        events.append(SecurityEvent(
            event_type=LOGIN_ATTEMPT,
            reason="Credential submission",
            data=dict(metadata),
        ))

    for rule in RULES:
        reason = rule(facts)
        if reason:
            events.append(SecurityEvent(
                event_type=SUSPICIOUS_ACTIVITY,
                reason=reason,
                data=dict(metadata, reason=reason),
            ))
            break

    return events
