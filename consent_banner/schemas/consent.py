"""Consent schemas — the persisted record and the host-to-client payload."""

from __future__ import annotations

import logging
import math
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_DURATION_DAYS = 180
SECONDS_PER_DAY = 86400
DISMISS_ACTION = "84em_dismiss_consent"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class ConsentRecord(BaseModel):
    """One consent decision, identical in every storage backend.

    Serialized as compact JSON: {"accepted":true,"version":"...","timestamp":...}
    """

    model_config = ConfigDict(frozen=True, strict=True)

    accepted: bool
    version: str = Field(min_length=1)
    timestamp: int = Field(description="Milliseconds since epoch")

    @field_validator("accepted")
    @classmethod
    def validate_accepted(cls, v: bool) -> bool:
        """There is no declined state: a record only exists once accepted."""
        if v is not True:
            msg = "accepted must be true"
            raise ValueError(msg)
        return v

    def is_current(self, expected_version: str) -> bool:
        """True if this record applies to the given policy version."""
        return self.version == expected_version

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes | None) -> ConsentRecord | None:
        """Parse stored JSON; anything malformed is treated as absent."""
        if not raw:
            return None
        try:
            return cls.model_validate_json(raw)
        except ValidationError:
            logger.debug("Discarding malformed consent record")
            return None


class ClientConfig(BaseModel):
    """Configuration payload the host hands to the client once per page load.

    Field aliases match the JSON keys the host emits (ajaxUrl, isSecure, ...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str = Field(min_length=1)
    duration: int | str | None = DEFAULT_DURATION_DAYS
    ajax_url: str | None = Field(default=None, alias="ajaxUrl")
    nonce: str | None = None
    is_secure: bool = Field(default=False, alias="isSecure")
    cookie_path: str | None = Field(default="/", alias="cookiePath")
    cookie_domain: str | None = Field(default=None, alias="cookieDomain")

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: object) -> object:
        # Hosts may emit a bare number as the policy version.
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("duration", mode="before")
    @classmethod
    def floor_duration(cls, v: object) -> object:
        if isinstance(v, float):
            return math.floor(v) if math.isfinite(v) else None
        return v

    @field_validator("is_secure", mode="before")
    @classmethod
    def coerce_is_secure(cls, v: object) -> object:
        # PHP-style booleans arrive as "" or "1".
        if v is None or v == "":
            return False
        return v

    @field_validator("cookie_domain", mode="before")
    @classmethod
    def normalize_cookie_domain(cls, v: object) -> object:
        # Hosts without a cookie domain send false or an empty string.
        if v is False or v == "":
            return None
        return v

    @property
    def duration_days(self) -> int:
        """Retention in days, falling back to 180 for missing or non-positive values."""
        if isinstance(self.duration, int):
            days = self.duration
        else:
            match = _LEADING_INT.match(self.duration or "")
            days = int(match.group(1)) if match else 0
        return days if days > 0 else DEFAULT_DURATION_DAYS

    @property
    def max_age(self) -> int:
        """Cookie Max-Age in seconds."""
        return self.duration_days * SECONDS_PER_DAY

    @property
    def path(self) -> str:
        return self.cookie_path or "/"

    @property
    def can_acknowledge(self) -> bool:
        """Both an endpoint and a token are needed to notify the host."""
        return bool(self.ajax_url and self.nonce)
