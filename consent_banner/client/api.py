"""Public consent API for other code on the page."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable

from consent_banner.client.store import ConsentStateStore
from consent_banner.events import emit
from consent_banner.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

ReloadFn = Callable[[], Awaitable[object] | object]


class ConsentAPI:
    """hasConsent / resetConsent surface.

    has_consent() is deliberately version-agnostic: third-party code only
    needs to know whether the visitor ever agreed.
    """

    def __init__(self, store: ConsentStateStore, reload: ReloadFn) -> None:
        self._store = store
        self._reload = reload

    def has_consent(self) -> bool:
        return self._store.read() is not None

    async def reset_consent(self) -> None:
        """Clear both backends, then reload the page exactly once."""
        self._store.clear()
        logger.info("Consent reset; reloading page")
        await emit(SystemEvent(
            event_type=EventType.CONSENT_RESET,
            source_module="client.api",
        ))

        result = self._reload()
        if inspect.isawaitable(result):
            await result
