"""Banner controller — two-state machine driving the consent banner.

HIDDEN is the initial state. The banner becomes VISIBLE on initialization
when no record is stored or the stored record is for another policy version.
Any dismissal (accept button, Escape) counts as acceptance; there is no
decline path. The host acknowledgement runs as a detached task that never
feeds back into the state machine.
"""

from __future__ import annotations

import asyncio
import logging
import time
import webbrowser
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol, runtime_checkable

from consent_banner.client.store import ConsentStateStore
from consent_banner.events import emit
from consent_banner.schemas.consent import ClientConfig, ConsentRecord
from consent_banner.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

LINK_FEATURES = "noopener,noreferrer"

AcknowledgeFn = Callable[[ClientConfig], Awaitable[bool]]
OpenUrlFn = Callable[[str, str], object]


class BannerState(str, Enum):
    HIDDEN = "hidden"
    VISIBLE = "visible"


@runtime_checkable
class Banner(Protocol):
    """The banner element on the page.

    Implementations may also provide ``async def animate_out()``; the
    controller awaits it before hiding.
    """

    def show(self) -> None: ...

    def hide(self) -> None: ...

    def focus_accept(self) -> None: ...


def open_in_new_context(url: str, features: str = LINK_FEATURES) -> object:
    """Default opener — a new browser tab via the webbrowser module.

    ``features`` is only logged: webbrowser cannot apply noopener or
    noreferrer. Pass a real opener as ``open_url`` where those matter.
    """
    logger.debug("Opening %s (%s)", url, features)
    return webbrowser.open_new_tab(url)


class BannerController:
    """Decides visibility on load and handles dismissal.

    All collaborators are passed in once at construction; the controller
    never looks them up again.
    """

    def __init__(
        self,
        banner: Banner | None,
        store: ConsentStateStore,
        config: ClientConfig,
        acknowledge: AcknowledgeFn | None = None,
        clock: Callable[[], float] = time.time,
        open_url: OpenUrlFn = open_in_new_context,
    ) -> None:
        self.banner = banner
        self.store = store
        self.config = config
        self._acknowledge = acknowledge
        self._clock = clock
        self._open_url = open_url
        self.state = BannerState.HIDDEN
        self.active = False
        self._pending: set[asyncio.Task[None]] = set()

    def needs_consent(self) -> bool:
        """True if nothing is stored or the stored record is stale."""
        record = self.store.read()
        return record is None or not record.is_current(self.config.version)

    async def initialize(self) -> bool:
        """Activate the controller and show the banner if required.

        Returns False when the page has no banner element.
        """
        if self.banner is None:
            logger.debug("No consent banner on page; controller inactive")
            return False

        self.active = True
        if self.needs_consent():
            self.banner.show()
            self.banner.focus_accept()
            self.state = BannerState.VISIBLE
            logger.info("Consent banner shown (version=%s)", self.config.version)
            await emit(SystemEvent(
                event_type=EventType.BANNER_SHOWN,
                data={"version": self.config.version},
                source_module="client.controller",
            ))
        return True

    async def accept(self) -> ConsentRecord | None:
        """Record acceptance of the current version and hide the banner."""
        if not self.active:
            return None

        record = ConsentRecord(
            accepted=True,
            version=self.config.version,
            timestamp=int(self._clock() * 1000),
        )
        self.store.write(record)
        await self._hide()

        await emit(SystemEvent(
            event_type=EventType.CONSENT_ACCEPTED,
            data=record.model_dump(),
            source_module="client.controller",
        ))
        logger.info("Consent accepted (version=%s)", record.version)

        if self._acknowledge is not None and self.config.can_acknowledge:
            task = asyncio.create_task(self._send_acknowledgement())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return record

    async def handle_key(self, key: str) -> ConsentRecord | None:
        """Escape while visible dismisses, which means accepting."""
        if key == "Escape" and self.state is BannerState.VISIBLE:
            return await self.accept()
        return None

    def learn_more(self, url: str | None) -> None:
        """Open the policy page in a new context; no state change."""
        if url:
            self._open_url(url, LINK_FEATURES)

    async def drain(self) -> None:
        """Wait for outstanding acknowledgements (shutdown and tests only)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _hide(self) -> None:
        # The hide runs whether or not the animation completes.
        animate_out = getattr(self.banner, "animate_out", None)
        try:
            if animate_out is not None:
                await animate_out()
        except Exception as exc:
            logger.warning("Banner animation failed: %s", exc)
        finally:
            if self.banner is not None:
                self.banner.hide()
            self.state = BannerState.HIDDEN

    async def _send_acknowledgement(self) -> None:
        try:
            await self._acknowledge(self.config)  # type: ignore[misc]
        except Exception as exc:
            logger.warning("Could not send consent to server: %s", exc)
