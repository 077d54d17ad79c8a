"""Consent endpoints — FastAPI router with Jinja2 markup.

- GET  /consent/config   → per-load client payload (version, nonce, cookie attributes), 204 when hidden
- GET  /consent/banner   → banner markup fragment, 204 when the banner is not wanted
- POST /consent/dismiss  → best-effort acknowledgement; sets the HTTP-only mirror cookie

has_consent(request) lets other routes check the mirror cookie server-side.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.routing import NoMatchFound

from consent_banner.config import settings
from consent_banner.events import emit
from consent_banner.schemas.consent import DISMISS_ACTION
from consent_banner.schemas.events import EventType, SystemEvent
from consent_banner.server.banner import (
    banner_context,
    build_client_config,
    is_secure_request,
    mirror_cookie_max_age,
    mirror_cookie_value,
    parse_consent_cookie,
    should_show_banner,
)
from consent_banner.server.nonce import nonce_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consent", tags=["consent"])

STATIC_DIR = Path(__file__).parent / "static"

# Jinja2 templates
_template_dir = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=str(_template_dir))


def _stylesheet_url(request: Request) -> str | None:
    """URL of consent.css when the app mounts the static directory."""
    try:
        return str(request.url_for("consent_static", path="consent.css"))
    except NoMatchFound:
        return None


def has_consent(request: Request) -> bool:
    """True if the mirror cookie exists and records an acceptance."""
    data = parse_consent_cookie(request.cookies.get(settings.consent.cookie_name))
    return bool(data and data.get("accepted"))


# ── Routes ───────────────────────────────────────────────────────────


@router.get("/config", name="consent_config")
async def consent_config(
    request: Request,
    page: str | None = Query(None, description="Path of the page embedding the banner"),
) -> Response:
    """Client payload for this page load, or 204 when the banner is not wanted."""
    cfg = settings.consent
    if not should_show_banner(request, cfg, page_path=page):
        return Response(status_code=204)

    config = build_client_config(
        request,
        cfg,
        nonce=nonce_manager.create(),
        ajax_url=str(request.url_for("dismiss_consent")),
    )
    return JSONResponse(
        config.model_dump(by_alias=True),
        headers={"Cache-Control": "no-store"},
    )


@router.get("/banner", response_class=HTMLResponse, name="consent_banner")
async def consent_banner(
    request: Request,
    page: str | None = Query(None, description="Path of the page embedding the banner"),
) -> Response:
    """Banner markup, or 204 for logged-in visitors and the policy page."""
    cfg = settings.consent
    if not should_show_banner(request, cfg, page_path=page):
        return Response(status_code=204)

    context = banner_context(cfg)
    context["stylesheet_url"] = _stylesheet_url(request)
    return templates.TemplateResponse(request, "banner.html", context)


@router.post("/dismiss", name="dismiss_consent")
async def dismiss_consent(request: Request) -> JSONResponse:
    """Verify the nonce and mirror the acceptance into an HTTP-only cookie."""
    form = await request.form()
    action = str(form.get("action", ""))
    nonce = str(form.get("nonce", ""))

    if action != DISMISS_ACTION:
        return JSONResponse({"success": False, "data": "Unknown action"}, status_code=400)

    if not nonce_manager.verify(nonce):
        logger.warning("Rejected consent dismissal with invalid nonce")
        return JSONResponse({"success": False, "data": "Invalid nonce"}, status_code=403)

    cfg = settings.consent
    response = JSONResponse({"success": True})
    response.set_cookie(
        key=cfg.cookie_name,
        value=mirror_cookie_value(cfg),
        max_age=mirror_cookie_max_age(cfg),
        path=cfg.cookie_path or "/",
        domain=cfg.cookie_domain or None,
        secure=is_secure_request(request),
        httponly=True,
        samesite="lax",
    )

    await emit(SystemEvent(
        event_type=EventType.CONSENT_ACKNOWLEDGED,
        data={"version": cfg.cookie_version},
        source_module="server.web",
    ))
    logger.info("Consent dismissal acknowledged (version=%s)", cfg.cookie_version)
    return response
