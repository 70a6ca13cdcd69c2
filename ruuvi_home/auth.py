"""Admin password check and in-memory admin session tokens.

Sessions are never persisted; a restart simply requires logging in again.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import time
from dataclasses import dataclass

import bcrypt

from ruuvi_home.utils.timestamps import Clock

logger = logging.getLogger(__name__)

SESSION_DURATION_SEC = 24 * 60 * 60
MAX_SESSIONS = 64
BCRYPT_MAX_BYTES = 72
UNAUTHORIZED_MESSAGE = "Admin authentication required or expired"


@dataclass(frozen=True)
class AuthResult:
    success: bool
    token: str | None = None
    message: str | None = None


class AdminSessionStore:
    """Bounded token -> expiry table with an injectable clock.

    The password can be configured in plain text (compared in constant time)
    or as a bcrypt hash; the hash wins when both are set.
    """

    def __init__(
        self,
        password: str | None = None,
        password_hash: str | None = None,
        *,
        ttl_sec: int = SESSION_DURATION_SEC,
        max_sessions: int = MAX_SESSIONS,
        clock: Clock = time.time,
    ):
        self._password = password or None
        self._password_hash = password_hash or None
        self.ttl_sec = ttl_sec
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: dict[str, float] = {}

    @property
    def configured(self) -> bool:
        return self._password is not None or self._password_hash is not None

    def _password_matches(self, password: str) -> bool:
        candidate = password.encode("utf-8")
        if self._password_hash is not None:
            # checkpw raises past the 72-byte bcrypt input limit
            if len(candidate) > BCRYPT_MAX_BYTES:
                return False
            try:
                return bcrypt.checkpw(candidate, self._password_hash.encode("utf-8"))
            except ValueError:
                logger.error("ADMIN_PASSWORD_HASH is not a valid bcrypt hash")
                return False
        return hmac.compare_digest(candidate, self._password.encode("utf-8"))

    def authenticate(self, password: object) -> AuthResult:
        if not self.configured:
            return AuthResult(False, message="Admin authentication not configured")
        if not password or not isinstance(password, str):
            return AuthResult(False, message="Invalid password format")
        if not self._password_matches(password):
            logger.warning("Failed admin authentication attempt")
            return AuthResult(False, message="Invalid password")

        self.sweep()
        if len(self._sessions) >= self.max_sessions:
            oldest = min(self._sessions, key=self._sessions.__getitem__)
            del self._sessions[oldest]

        token = secrets.token_urlsafe(32)
        self._sessions[token] = self._clock() + self.ttl_sec
        return AuthResult(True, token=token)

    def is_valid(self, token: str | None) -> bool:
        if not token or not isinstance(token, str):
            return False
        expiry = self._sessions.get(token)
        if expiry is None:
            return False
        if self._clock() > expiry:
            del self._sessions[token]
            return False
        return True

    def extend(self, token: str | None) -> bool:
        """Push a valid token's expiry out to a full TTL from now."""
        if not self.is_valid(token):
            return False
        self._sessions[token] = self._clock() + self.ttl_sec
        return True

    def revoke(self, token: str | None) -> None:
        if token:
            self._sessions.pop(token, None)

    def sweep(self) -> int:
        """Drop expired sessions. Returns how many were removed."""
        now = self._clock()
        expired = [token for token, expiry in self._sessions.items() if now > expiry]
        for token in expired:
            del self._sessions[token]
        return len(expired)

    @property
    def active_count(self) -> int:
        return len(self._sessions)
