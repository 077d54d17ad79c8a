"""HTTP client for the host side of the banner.

Fetches the per-load configuration payload and sends the best-effort
acknowledgement after the visitor accepts. The acknowledgement is a mirror
only: failures are logged and swallowed, never retried.
"""

from __future__ import annotations

import logging

import httpx

from consent_banner.schemas.consent import DISMISS_ACTION, ClientConfig

logger = logging.getLogger(__name__)

CONFIG_PATH = "/consent/config"


class HostClient:
    """Async client for the host's consent endpoints.

    The underlying httpx.AsyncClient keeps its own cookie jar, so the
    HTTP-only mirror cookie the host sets on acknowledgement is sent back on
    later requests, as a browser would for same-origin credentials.
    """

    def __init__(
        self,
        base_url: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, connect=5.0),
        )

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    async def fetch_config(
        self,
        path: str = CONFIG_PATH,
        page: str | None = None,
    ) -> ClientConfig | None:
        """GET the configuration payload for this page load.

        Args:
            path: Config endpoint on the host.
            page: Path of the page embedding the banner, checked against the
                host's visibility rules.

        Returns:
            The payload, or None when the host answers 204 (no banner wanted).

        Raises:
            httpx.HTTPError: The host could not be reached or refused.
        """
        params = {"page": page} if page else None
        response = await self._client.get(path, params=params)
        response.raise_for_status()
        if response.status_code == 204:
            logger.debug("Host withheld consent config for page=%s", page)
            return None
        config = ClientConfig.model_validate(response.json())
        logger.debug("Loaded consent config version=%s", config.version)
        return config

    async def acknowledge(self, config: ClientConfig) -> bool:
        """POST the dismissal to the host. Returns True on a 2xx response."""
        if not config.can_acknowledge:
            return False

        try:
            response = await self._client.post(
                config.ajax_url,  # type: ignore[arg-type]
                data={"action": DISMISS_ACTION, "nonce": config.nonce},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Could not send consent to server: HTTP %s", exc.response.status_code,
            )
            return False
        except httpx.HTTPError as exc:
            logger.warning("Could not send consent to server: %s", exc)
            return False

        logger.info("Consent acknowledged by host (version=%s)", config.version)
        return True

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()
