"""Visitor-side consent state — storage backends, banner controller, public API."""

from consent_banner.client.api import ConsentAPI
from consent_banner.client.controller import BannerController, BannerState
from consent_banner.client.store import ConsentStateStore

__all__ = ["BannerController", "BannerState", "ConsentAPI", "ConsentStateStore"]
