"""CSRF tokens, session binding, admin credentials and client addressing.

Guards operate on the request's session mapping (Starlette's
``request.session``), so they are cheap to build per request and easy to
exercise with a plain dict.

Flow Diagram — mutating request
===============================
::
    ┌──────────────────┐
    │ SessionGuard.bind│  address changed → session cleared
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ rate limiter     │──── RateLimited (429)
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ is_admin?        │──── Unauthorized (401)   [admin routes only]
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ CSRFGuard.       │──── Forbidden (403)
    │ validate(token)  │
    └────────┬─────────┘
             ▼
       RecordStore write

Key Behaviours
===============
- CSRF tokens are 256-bit, hex encoded, stored in the session and compared
  in constant time.
- A session is bound to the address it started from; any disagreement
  resets it, which also drops admin state and the CSRF token.
- Admin state requires both the flag and a matching bound address.
- Admin passwords are stored as ``pbkdf2_sha256$iterations$salt$hex``.
"""

import hashlib
import hmac
import ipaddress
import logging
import secrets
from collections.abc import MutableMapping
from typing import Any

import validators
from starlette.requests import Request

from pastelink.config import Settings

__all__ = [
    "CSRFGuard",
    "SessionGuard",
    "SECURITY_HEADERS",
    "hash_password",
    "verify_password",
    "verify_admin_credentials",
    "resolve_client_ip",
]

logger = logging.getLogger("pastelink.security")

CSRF_SESSION_KEY = "csrf_token"
PBKDF2_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ITERATIONS = 600_000

FORWARDED_IP_HEADERS = ("cf-connecting-ip", "x-forwarded-for", "x-real-ip")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none'",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


class CSRFGuard:
    def __init__(self, session: MutableMapping[str, Any], enabled: bool = True):
        self._session = session
        self.enabled = enabled

    def issue(self) -> str:
        token = self._session.get(CSRF_SESSION_KEY)
        if not isinstance(token, str) or not token:
            token = secrets.token_hex(32)
            self._session[CSRF_SESSION_KEY] = token
        return token

    def validate(self, token: str | None) -> bool:
        if not self.enabled:
            return True
        expected = self._session.get(CSRF_SESSION_KEY)
        if not isinstance(expected, str) or not expected or not token:
            return False
        return hmac.compare_digest(expected.encode(), token.encode())


class SessionGuard:
    def __init__(self, session: MutableMapping[str, Any]):
        self._session = session

    def bind(self, client_ip: str) -> bool:
        """Bind the session to ``client_ip``.

        Returns:
            bool: True if the session was reset because the address changed.
        """
        bound = self._session.get("ip_address")
        reset = bound is not None and bound != client_ip
        if reset:
            logger.warning(f"Session address changed from {bound} to {client_ip}; resetting session")
            self._session.clear()
        self._session["ip_address"] = client_ip
        return reset

    def login(self, client_ip: str) -> None:
        self._session.clear()
        self._session["ip_address"] = client_ip
        self._session["admin"] = True
        self._session["admin_ip"] = client_ip

    def logout(self) -> None:
        self._session.clear()

    def is_admin(self, client_ip: str) -> bool:
        return self._session.get("admin") is True and self._session.get("admin_ip") == client_ip


def hash_password(password: str, *, iterations: int = PBKDF2_ITERATIONS, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"{PBKDF2_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != PBKDF2_ALGORITHM or rounds <= 0:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), rounds)
    return hmac.compare_digest(digest.hex(), expected)


def verify_admin_credentials(user: str, password: str, settings: Settings) -> bool:
    if not settings.ADMIN_PASSWORD_HASH:
        return False
    user_ok = hmac.compare_digest(user.encode(), settings.ADMIN_USER.encode())
    password_ok = verify_password(password, settings.ADMIN_PASSWORD_HASH)
    return user_ok and password_ok


def resolve_client_ip(request: Request, settings: Settings) -> str:
    """The address to bind sessions to, rate limit by, and record on texts.

    Forwarding headers are only honoured behind a trusted proxy, and only
    when they carry a syntactically valid, globally routable address.
    """
    peer = request.client.host if request.client else "0.0.0.0"
    if not settings.TRUST_PROXY_HEADERS:
        return peer
    for header in FORWARDED_IP_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if _is_public_ip(candidate):
            return candidate
    return peer


def _is_public_ip(value: str) -> bool:
    if not (validators.ipv4(value, cidr=False) or validators.ipv6(value, cidr=False)):
        return False
    return ipaddress.ip_address(value).is_global
