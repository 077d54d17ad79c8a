"""Storage backends for the visitor's consent record.

Two interchangeable adapters sit behind the ConsentBackend protocol:

- LocalStorageBackend — durable key/value storage with no expiry
  (MemoryStorage in-process, FileStorage on disk).
- CookieBackend — a script-readable cookie in a CookieJar, the mirror that
  travels to the host with every request and expires after the retention
  period.

Backend faults (disabled storage, quota, I/O) surface as
StorageUnavailableError; the store decides what to do with them.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote

from consent_banner.schemas.consent import ClientConfig, ConsentRecord

logger = logging.getLogger(__name__)

STORAGE_KEY = "84em_consent"
COOKIE_NAME = "84em_consent"


class StorageUnavailableError(Exception):
    """A storage backend refused a read or write."""


# ── Key/value storage ────────────────────────────────────────────────


@runtime_checkable
class KeyValueStorage(Protocol):
    """Minimal localStorage-style interface."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage.

    Args:
        disabled: Every operation raises, as in a private browsing window.
        quota: Maximum total characters across all values; None is unlimited.
    """

    def __init__(self, disabled: bool = False, quota: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self.disabled = disabled
        self.quota = quota

    def _check(self) -> None:
        if self.disabled:
            raise StorageUnavailableError("storage is disabled")

    def get_item(self, key: str) -> str | None:
        self._check()
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check()
        if self.quota is not None:
            used = sum(len(v) for k, v in self._items.items() if k != key)
            if used + len(value) > self.quota:
                raise StorageUnavailableError("storage quota exceeded")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._check()
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class FileStorage:
    """JSON-file storage that survives process restarts.

    Writes go through a temp file and os.replace so a crash never leaves a
    half-written file behind.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StorageUnavailableError(f"cannot read {self.path}: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt storage file %s", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring storage file %s with unexpected layout", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _dump(self, items: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".consent-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(items, fh)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageUnavailableError(f"cannot write {self.path}: {exc}") from exc

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._dump(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._dump(items)


# ── Cookie jar ───────────────────────────────────────────────────────


@dataclass
class StoredCookie:
    """A cookie as the jar keeps it, attributes included."""

    name: str
    value: str
    path: str = "/"
    domain: str | None = None
    expires_at: float | None = None
    secure: bool = False
    same_site: str | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class CookieJar:
    """document.cookie semantics for one page.

    Assigning a Set-Cookie style string through set() creates, replaces or
    expires a cookie (keyed by name, path and domain). header() returns the
    "a=1; b=2" string a script would read back.
    """

    def __init__(self, clock: Callable[[], float] = time.time, disabled: bool = False) -> None:
        self._cookies: dict[tuple[str, str, str | None], StoredCookie] = {}
        self._clock = clock
        self.disabled = disabled

    def set(self, cookie_string: str) -> None:
        if self.disabled:
            raise StorageUnavailableError("cookies are disabled")

        parts = [p.strip() for p in cookie_string.split(";")]
        name, sep, value = parts[0].partition("=")
        name = name.strip()
        if not sep or not name:
            logger.debug("Ignoring cookie string without name: %r", cookie_string)
            return

        cookie = StoredCookie(name=name, value=value.strip())
        max_age: int | None = None
        for attr in parts[1:]:
            key, _, attr_value = attr.partition("=")
            key = key.strip().lower()
            attr_value = attr_value.strip()
            if key == "max-age":
                try:
                    max_age = int(attr_value)
                except ValueError:
                    continue
            elif key == "path" and attr_value:
                cookie.path = attr_value
            elif key == "domain" and attr_value:
                cookie.domain = attr_value.lstrip(".")
            elif key == "secure":
                cookie.secure = True
            elif key == "samesite":
                cookie.same_site = attr_value

        jar_key = (cookie.name, cookie.path, cookie.domain)
        if max_age is not None and max_age <= 0:
            self._cookies.pop(jar_key, None)
            return
        if max_age is not None:
            cookie.expires_at = self._clock() + max_age
        self._cookies[jar_key] = cookie

    def header(self) -> str:
        if self.disabled:
            raise StorageUnavailableError("cookies are disabled")
        now = self._clock()
        return "; ".join(
            f"{c.name}={c.value}" for c in self._cookies.values() if not c.is_expired(now)
        )

    def find(self, name: str) -> StoredCookie | None:
        """First unexpired cookie with this name, attributes included."""
        now = self._clock()
        for cookie in self._cookies.values():
            if cookie.name == name and not cookie.is_expired(now):
                return cookie
        return None


# ── Consent backends ─────────────────────────────────────────────────


@runtime_checkable
class ConsentBackend(Protocol):
    """One place a ConsentRecord can live."""

    name: str

    def load(self) -> ConsentRecord | None: ...

    def save(self, record: ConsentRecord) -> None: ...

    def clear(self) -> None: ...


class LocalStorageBackend:
    """Durable backend: the record as JSON under a single storage key."""

    name = "local_storage"

    def __init__(self, storage: KeyValueStorage, key: str = STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key

    def load(self) -> ConsentRecord | None:
        return ConsentRecord.from_json(self._storage.get_item(self._key))

    def save(self, record: ConsentRecord) -> None:
        self._storage.set_item(self._key, record.to_json())

    def clear(self) -> None:
        self._storage.remove_item(self._key)


def encode_cookie_value(value: str) -> str:
    """Percent-encode like encodeURIComponent."""
    return quote(value, safe="!*'()")


class CookieBackend:
    """Script-readable cookie mirror of the record.

    Wire format:
        name=<urlencoded-json>; Max-Age=<seconds>; Path=<path>; SameSite=Lax[; Secure][; Domain=<domain>]
    """

    name = "cookie"

    def __init__(self, jar: CookieJar, config: ClientConfig, cookie_name: str = COOKIE_NAME) -> None:
        self._jar = jar
        self._config = config
        self._cookie_name = cookie_name
        self._pattern = re.compile(r"(?:^|;\s*)" + re.escape(cookie_name) + r"=([^;]+)")

    def build_cookie(self, record: ConsentRecord) -> str:
        """Serialize the record into the Set-Cookie style string."""
        cfg = self._config
        cookie = (
            f"{self._cookie_name}={encode_cookie_value(record.to_json())}; "
            f"Max-Age={cfg.max_age}; Path={cfg.path}; SameSite=Lax"
        )
        if cfg.is_secure:
            cookie += "; Secure"
        if cfg.cookie_domain:
            cookie += f"; Domain={cfg.cookie_domain}"
        return cookie

    def load(self) -> ConsentRecord | None:
        match = self._pattern.search(self._jar.header())
        if not match:
            return None
        return ConsentRecord.from_json(unquote(match.group(1)))

    def save(self, record: ConsentRecord) -> None:
        self._jar.set(self.build_cookie(record))

    def clear(self) -> None:
        cookie = f"{self._cookie_name}=; Max-Age=0; Path={self._config.path}"
        # A cookie written with a Domain is only replaced by one with the same Domain.
        if self._config.cookie_domain:
            cookie += f"; Domain={self._config.cookie_domain}"
        self._jar.set(cookie)
