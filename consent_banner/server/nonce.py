"""Per-load request-authentication tokens for the dismiss endpoint.

A nonce is an HMAC-SHA256 over the action name and a time tick of half the
lifetime, truncated to 20 hex chars. It verifies during the tick it was
issued in and the one after, so a token lives between lifetime/2 and
lifetime seconds.

Usage:
    from consent_banner.server.nonce import nonce_manager

    token = nonce_manager.create()
    nonce_manager.verify(token)  # True
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import secrets
import time
from collections.abc import Callable

from consent_banner.config import settings

logger = logging.getLogger(__name__)

NONCE_ACTION = "84em-consent-nonce"
NONCE_LENGTH = 20


class NonceManager:
    """Creates and verifies time-bucketed HMAC nonces."""

    def __init__(
        self,
        secret: str,
        lifetime: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            msg = "Nonce secret must not be empty"
            raise ValueError(msg)
        self._key = secret.encode("utf-8")
        self.lifetime = lifetime
        self._clock = clock

    def tick(self) -> int:
        """Current half-lifetime bucket."""
        return math.ceil(self._clock() / (self.lifetime / 2))

    def _sign(self, action: str, tick: int) -> str:
        digest = hmac.new(self._key, f"{tick}|{action}".encode(), hashlib.sha256).hexdigest()
        return digest[:NONCE_LENGTH]

    def create(self, action: str = NONCE_ACTION) -> str:
        return self._sign(action, self.tick())

    def verify(self, nonce: str | None, action: str = NONCE_ACTION) -> bool:
        """Check a nonce against the current and previous tick."""
        if not nonce:
            return False
        current = self.tick()
        return any(
            hmac.compare_digest(self._sign(action, t), nonce)
            for t in (current, current - 1)
        )


def _build_default() -> NonceManager:
    secret = settings.security.nonce_secret
    if not secret:
        logger.warning("NONCE_SECRET not set — using a random per-process key")
        secret = secrets.token_hex(32)
    return NonceManager(secret, lifetime=settings.security.nonce_lifetime)


# Module-level singleton
nonce_manager = _build_default()
