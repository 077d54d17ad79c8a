"""Consent state store — reconciles the durable and cookie backends.

Backends are queried in a fixed priority order (durable first). Every write
goes to every backend; a failing backend never blocks the others and never
raises to the caller. The worst outcome of any fault is "ask again".
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from consent_banner.client.backends import (
    ConsentBackend,
    CookieBackend,
    CookieJar,
    KeyValueStorage,
    LocalStorageBackend,
)
from consent_banner.schemas.consent import ClientConfig, ConsentRecord

logger = logging.getLogger(__name__)


class ConsentStateStore:
    """Single read/write surface over an ordered list of backends."""

    def __init__(self, backends: Sequence[ConsentBackend]) -> None:
        if not backends:
            msg = "ConsentStateStore needs at least one backend"
            raise ValueError(msg)
        self._backends: tuple[ConsentBackend, ...] = tuple(backends)

    @classmethod
    def default(
        cls,
        storage: KeyValueStorage,
        jar: CookieJar,
        config: ClientConfig,
    ) -> ConsentStateStore:
        """Durable local storage first, cookie mirror second."""
        return cls([LocalStorageBackend(storage), CookieBackend(jar, config)])

    @property
    def backends(self) -> tuple[ConsentBackend, ...]:
        return self._backends

    def read(self) -> ConsentRecord | None:
        """Return the first valid record in priority order, or None."""
        for backend in self._backends:
            try:
                record = backend.load()
            except Exception as exc:
                logger.warning("Could not read consent from %s: %s", backend.name, exc)
                continue
            if record is not None:
                return record
        return None

    def write(self, record: ConsentRecord) -> None:
        """Write the record to every backend independently."""
        for backend in self._backends:
            try:
                backend.save(record)
            except Exception as exc:
                logger.warning("Could not save consent to %s: %s", backend.name, exc)

    def clear(self) -> None:
        """Remove the record from every backend independently."""
        for backend in self._backends:
            try:
                backend.clear()
            except Exception as exc:
                logger.warning("Could not clear consent from %s: %s", backend.name, exc)

    def has_record(self) -> bool:
        return self.read() is not None
