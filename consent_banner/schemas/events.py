"""SystemEvent schema — the notification that other page code observes.

Consent changes are announced as SystemEvents so subscribers can react
without polling the storage backends.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Visitor-side consent lifecycle
    CONSENT_ACCEPTED = "consent.accepted"
    CONSENT_RESET = "consent.reset"
    BANNER_SHOWN = "consent.banner_shown"

    # Host side
    CONSENT_ACKNOWLEDGED = "consent.acknowledged"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"


class SystemEvent(BaseModel):
    """Immutable event flowing through the in-process bus."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Flexible payload (a ConsentRecord dump for consent events)
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
