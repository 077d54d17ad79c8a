"""Tests for HostClient and ConsentPage wiring against a mocked host.

Covers:
- Config payload parsing (camelCase keys)
- Acknowledgement: form body, 2xx → True, non-2xx / network error → False, no retry
- ConsentPage: load, accept with acknowledgement, reset triggers a fresh load
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs

import httpx
import pytest

from consent_banner.client.acknowledge import HostClient
from consent_banner.client.backends import CookieJar, MemoryStorage
from consent_banner.client.controller import BannerState
from consent_banner.client.page import ConsentPage
from consent_banner.schemas.consent import DISMISS_ACTION, ClientConfig

BASE_URL = "https://example.test"

PAYLOAD = {
    "version": "2025-09-15",
    "duration": 180,
    "ajaxUrl": f"{BASE_URL}/consent/dismiss",
    "nonce": "abc123",
    "isSecure": True,
    "cookiePath": "/",
    "cookieDomain": None,
}

# ── Helpers ──────────────────────────────────────────────────────────


class FakeHost:
    """httpx.MockTransport handler recording every request."""

    def __init__(self, dismiss_status: int = 200, config_status: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self.dismiss_status = dismiss_status
        self.config_status = config_status
        self.fail_network = False
        self.withhold_config = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_network:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/consent/config":
            if self.withhold_config:
                return httpx.Response(204)
            return httpx.Response(self.config_status, json=PAYLOAD)
        if request.url.path == "/consent/dismiss":
            return httpx.Response(
                self.dismiss_status,
                json={"success": self.dismiss_status == 200},
                headers={"set-cookie": "84em_consent=mirror; Path=/; HttpOnly"},
            )
        return httpx.Response(404)

    def dismissals(self) -> list[dict[str, list[str]]]:
        return [
            parse_qs(r.content.decode())
            for r in self.requests
            if r.url.path == "/consent/dismiss"
        ]


def _host_client(fake: FakeHost) -> HostClient:
    return HostClient(client=httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(fake),
    ))


class FakeBanner:
    def __init__(self) -> None:
        self.hidden = True

    def show(self) -> None:
        self.hidden = False

    def hide(self) -> None:
        self.hidden = True

    def focus_accept(self) -> None:
        pass


@pytest.fixture()
def mock_emit():
    with (
        patch("consent_banner.client.controller.emit", new_callable=AsyncMock) as mock,
        patch("consent_banner.client.api.emit", new_callable=AsyncMock),
    ):
        yield mock


# ── fetch_config ─────────────────────────────────────────────────────


class TestFetchConfig:
    @pytest.mark.asyncio
    async def test_parses_payload(self):
        client = _host_client(FakeHost())
        config = await client.fetch_config()
        assert config.version == "2025-09-15"
        assert config.ajax_url == f"{BASE_URL}/consent/dismiss"
        assert config.is_secure is True
        assert config.can_acknowledge

    @pytest.mark.asyncio
    async def test_withheld_config_is_none(self):
        fake = FakeHost()
        fake.withhold_config = True
        assert await _host_client(fake).fetch_config() is None

    @pytest.mark.asyncio
    async def test_sends_page_path(self):
        fake = FakeHost()
        await _host_client(fake).fetch_config(page="/privacy-policy/")
        assert fake.requests[0].url.params["page"] == "/privacy-policy/"

    @pytest.mark.asyncio
    async def test_raises_on_server_error(self):
        client = _host_client(FakeHost(config_status=500))
        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_config()


# ── acknowledge ──────────────────────────────────────────────────────


class TestAcknowledge:
    @pytest.mark.asyncio
    async def test_posts_action_and_nonce(self):
        fake = FakeHost()
        client = _host_client(fake)

        ok = await client.acknowledge(ClientConfig.model_validate(PAYLOAD))

        assert ok is True
        assert fake.requests[0].method == "POST"
        assert fake.dismissals() == [{"action": [DISMISS_ACTION], "nonce": ["abc123"]}]

    @pytest.mark.asyncio
    async def test_keeps_mirror_cookie(self):
        client = _host_client(FakeHost())
        await client.acknowledge(ClientConfig.model_validate(PAYLOAD))
        assert client.cookies.get("84em_consent") == "mirror"

    @pytest.mark.asyncio
    async def test_non_2xx_is_logged_and_swallowed(self, caplog):
        fake = FakeHost(dismiss_status=403)
        client = _host_client(fake)

        with caplog.at_level(logging.WARNING, logger="consent_banner.client.acknowledge"):
            ok = await client.acknowledge(ClientConfig.model_validate(PAYLOAD))

        assert ok is False
        assert "403" in caplog.text
        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_network_error_is_logged_and_swallowed(self, caplog):
        fake = FakeHost()
        fake.fail_network = True
        client = _host_client(fake)

        with caplog.at_level(logging.WARNING, logger="consent_banner.client.acknowledge"):
            ok = await client.acknowledge(ClientConfig.model_validate(PAYLOAD))

        assert ok is False
        assert "Could not send consent to server" in caplog.text
        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_skipped_without_nonce(self):
        fake = FakeHost()
        client = _host_client(fake)
        ok = await client.acknowledge(ClientConfig(version="v1", ajax_url=f"{BASE_URL}/consent/dismiss"))
        assert ok is False
        assert fake.requests == []


# ── ConsentPage ──────────────────────────────────────────────────────


class TestConsentPage:
    @pytest.mark.asyncio
    async def test_full_visit(self, clock, mock_emit):
        fake = FakeHost()
        storage = MemoryStorage()
        jar = CookieJar(clock=clock)
        banner = FakeBanner()
        page = ConsentPage(_host_client(fake), storage=storage, jar=jar, banner=banner)

        controller = await page.load()
        assert controller.state is BannerState.VISIBLE
        assert page.api.has_consent() is False

        await controller.accept()
        await controller.drain()

        assert banner.hidden is True
        assert page.api.has_consent() is True
        assert len(fake.dismissals()) == 1

        # Second page load with consent stored keeps the banner hidden.
        second = ConsentPage(_host_client(fake), storage=storage, jar=jar, banner=FakeBanner())
        assert (await second.load()).state is BannerState.HIDDEN

    @pytest.mark.asyncio
    async def test_reset_reloads_page(self, clock, mock_emit):
        fake = FakeHost()
        page = ConsentPage(
            _host_client(fake), storage=MemoryStorage(), jar=CookieJar(clock=clock), banner=FakeBanner(),
        )
        await page.load()
        await page.controller.accept()
        await page.controller.drain()
        assert page.load_count == 1

        await page.api.reset_consent()

        assert page.load_count == 2
        assert page.controller.state is BannerState.VISIBLE
        assert page.api.has_consent() is False

    @pytest.mark.asyncio
    async def test_acknowledgement_failure_keeps_local_consent(self, clock, mock_emit):
        fake = FakeHost(dismiss_status=500)
        page = ConsentPage(
            _host_client(fake), storage=MemoryStorage(), jar=CookieJar(clock=clock), banner=FakeBanner(),
        )
        controller = await page.load()
        await controller.accept()
        await controller.drain()

        assert controller.state is BannerState.HIDDEN
        assert page.api.has_consent() is True

    @pytest.mark.asyncio
    async def test_withheld_config_keeps_banner_inactive(self, clock, mock_emit):
        fake = FakeHost()
        fake.withhold_config = True
        storage = MemoryStorage()
        banner = FakeBanner()
        page = ConsentPage(
            _host_client(fake), storage=storage, jar=CookieJar(clock=clock), banner=banner,
            page_path="/account/",
        )

        controller = await page.load()

        assert page.config is None
        assert controller.active is False
        assert controller.state is BannerState.HIDDEN
        assert banner.hidden is True
        assert await controller.accept() is None
        assert await controller.handle_key("Escape") is None
        assert storage.get_item("84em_consent") is None
        assert page.api.has_consent() is False
        assert fake.dismissals() == []
        assert fake.requests[0].url.params["page"] == "/account/"
