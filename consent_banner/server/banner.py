"""Host-side banner helpers — visibility rules, client payload, mirror cookie.

Request-dependent pieces take the Starlette Request; everything else reads
the ConsentSettings group so site owners can override via CONSENT_* env vars.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any
from urllib.parse import quote, unquote, urlsplit

from fastapi import Request

from consent_banner.config import ConsentSettings
from consent_banner.schemas.consent import SECONDS_PER_DAY, ClientConfig

logger = logging.getLogger(__name__)


def is_secure_request(request: Request) -> bool:
    """True for HTTPS, including behind a TLS-terminating proxy."""
    forwarded = request.headers.get("x-forwarded-proto", "")
    if forwarded:
        return forwarded.split(",")[0].strip().lower() == "https"
    return request.url.scheme == "https"


def is_logged_in(request: Request, cfg: ConsentSettings) -> bool:
    return bool(cfg.session_cookie_name and request.cookies.get(cfg.session_cookie_name))


def is_privacy_policy_page(path: str, cfg: ConsentSettings) -> bool:
    """Compare paths ignoring trailing slashes; absolute policy URLs compare by path."""
    if not cfg.policy_url:
        return False
    policy_path = urlsplit(cfg.policy_url).path or "/"
    return path.rstrip("/") == policy_path.rstrip("/")


def should_show_banner(request: Request, cfg: ConsentSettings, page_path: str | None = None) -> bool:
    """Whether the banner belongs on the page being served.

    Args:
        request: Incoming request (cookies identify logged-in visitors).
        cfg: Banner settings.
        page_path: Path of the page embedding the banner; defaults to the
            request path.
    """
    if is_logged_in(request, cfg) and not cfg.show_for_logged_in:
        return False
    if is_privacy_policy_page(page_path or request.url.path, cfg):
        return False
    return True


def build_client_config(
    request: Request,
    cfg: ConsentSettings,
    nonce: str,
    ajax_url: str,
) -> ClientConfig:
    """Assemble the per-load payload handed to the visitor's client."""
    return ClientConfig(
        version=cfg.cookie_version,
        duration=cfg.cookie_duration,
        ajax_url=ajax_url,
        nonce=nonce,
        is_secure=is_secure_request(request),
        cookie_path=cfg.cookie_path,
        cookie_domain=cfg.cookie_domain or None,
    )


def mirror_cookie_value(cfg: ConsentSettings, now: float | None = None) -> str:
    """Percent-encoded JSON for the HTTP-only mirror cookie (timestamp in seconds)."""
    payload = {
        "accepted": True,
        "version": cfg.cookie_version,
        "timestamp": int(now if now is not None else time.time()),
    }
    return quote(json.dumps(payload, separators=(",", ":")), safe="")


def mirror_cookie_max_age(cfg: ConsentSettings) -> int:
    return cfg.cookie_duration * SECONDS_PER_DAY


def parse_consent_cookie(raw: str | None) -> dict[str, Any] | None:
    """Decode a consent cookie value; None for anything malformed."""
    if not raw:
        return None
    try:
        data = json.loads(unquote(raw))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def banner_context(cfg: ConsentSettings) -> dict[str, Any]:
    """Template variables for banner.html."""
    return {
        "brand_name": cfg.brand_name,
        "accent_color": cfg.accent_color,
        "logo_url": cfg.logo_url,
        "policy_url": cfg.policy_url,
        "banner_text": cfg.banner_text,
    }
