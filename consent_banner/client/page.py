"""Page wiring — builds store, controller and API once per page load.

Usage:
    host = HostClient(base_url="https://example.com")
    page = ConsentPage(host, storage=FileStorage("/var/lib/app/consent.json"), jar=CookieJar(), banner=my_banner)
    await page.load()

    page.api.has_consent()
    await page.controller.accept()
"""

from __future__ import annotations

import logging

from consent_banner.client.acknowledge import HostClient
from consent_banner.client.api import ConsentAPI
from consent_banner.client.backends import CookieJar, KeyValueStorage
from consent_banner.client.controller import Banner, BannerController, OpenUrlFn, open_in_new_context
from consent_banner.client.store import ConsentStateStore
from consent_banner.schemas.consent import ClientConfig

logger = logging.getLogger(__name__)

# Cookie attributes used when the host sends no payload. The controller stays
# inactive in that case, so the version is never written.
WITHHELD_CONFIG = ClientConfig(version="withheld")


class ConsentPage:
    """One visitor page: the host payload plus the local collaborators."""

    def __init__(
        self,
        host: HostClient,
        storage: KeyValueStorage,
        jar: CookieJar,
        banner: Banner | None = None,
        open_url: OpenUrlFn = open_in_new_context,
        page_path: str | None = None,
    ) -> None:
        self.host = host
        self.storage = storage
        self.jar = jar
        self.banner = banner
        self.page_path = page_path
        self._open_url = open_url
        self.config: ClientConfig | None = None
        self.store: ConsentStateStore | None = None
        self.controller: BannerController | None = None
        self.api: ConsentAPI | None = None
        self.load_count = 0

    async def load(self) -> BannerController:
        """Fetch the host payload and initialize the controller.

        When the host withholds the payload (logged-in visitor, policy page)
        the controller gets no banner and stays inactive.
        """
        if self.controller is not None:
            await self.controller.drain()

        self.config = await self.host.fetch_config(page=self.page_path)
        config = self.config or WITHHELD_CONFIG
        banner = self.banner if self.config is not None else None

        self.store = ConsentStateStore.default(self.storage, self.jar, config)
        self.controller = BannerController(
            banner,
            self.store,
            config,
            acknowledge=self.host.acknowledge,
            open_url=self._open_url,
        )
        self.api = ConsentAPI(self.store, reload=self.load)
        await self.controller.initialize()

        self.load_count += 1
        logger.debug(
            "Consent page loaded (count=%d, banner=%s)", self.load_count, banner is not None,
        )
        return self.controller
