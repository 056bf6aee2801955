# controllers/facebook_controller.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from helpers.formatting import format_number, latest_value, metric_display_name, total_value
from helpers.token_helper import get_current_user
from integrations.base import IntegrationError
from integrations.facebook import FacebookAdapter
from integrations.registry import get_facebook
from models.auth import User

router = APIRouter(prefix="/facebook", tags=["facebook"])
logger = logging.getLogger("facebook")


# ---------- Connect (OAuth) ----------
@router.get("/connect")
async def connect_facebook(
    user: User = Depends(get_current_user),
    facebook: FacebookAdapter = Depends(get_facebook),
):
    """
    Returns the URL for the user to click "Connect Facebook".
    After login/consent, Meta redirects to /facebook/connect/callback.
    """
    auth_url = await facebook.connect(user.external_uid)
    return {
        "success": True,
        "auth_url": auth_url,
        "redirect_uri": facebook.settings.facebook_redirect_uri,
    }


@router.get("/connect/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    facebook: FacebookAdapter = Depends(get_facebook),
):
    url = await facebook.handle_callback(code=code, state=state, error=error)
    return RedirectResponse(url=url)


# ---------- Insights ----------
@router.get("/insights")
async def get_insights(
    user: User = Depends(get_current_user),
    facebook: FacebookAdapter = Depends(get_facebook),
):
    """
    Refreshes the trailing 30 days of page insights, then returns the stored
    points grouped by metric.
    """
    try:
        integ = await facebook.active_integration(user.external_uid)
    except IntegrationError as e:
        raise HTTPException(404, str(e))

    await facebook.sync_insights(integ)
    data = await facebook.fetch_insights(integ)
    return {
        "success": True,
        "data": data,
        "integration": {"page_name": integ.page_name, "page_id": integ.page_id},
    }


@router.get("/summary")
async def get_summary(
    user: User = Depends(get_current_user),
    facebook: FacebookAdapter = Depends(get_facebook),
):
    """
    Dashboard cards from stored insights only; no Graph calls.
    """
    try:
        integ = await facebook.active_integration(user.external_uid)
    except IntegrationError as e:
        raise HTTPException(404, str(e))

    data = await facebook.fetch_insights(integ)
    cards = []
    for metric_name, points in data.items():
        total = total_value(points)
        latest = latest_value(points)
        cards.append(
            {
                "metric": metric_name,
                "name": metric_display_name(metric_name),
                "total": total,
                "total_display": format_number(total),
                "latest": latest,
                "latest_display": format_number(latest),
            }
        )
    return {
        "success": True,
        "cards": cards,
        "integration": {"page_name": integ.page_name, "page_id": integ.page_id},
    }


# ---------- Full sync ----------
@router.post("/sync")
async def sync_facebook(
    user: User = Depends(get_current_user),
    facebook: FacebookAdapter = Depends(get_facebook),
):
    try:
        integ = await facebook.active_integration(user.external_uid)
        result = await facebook.sync_data(integ.id)
    except IntegrationError as e:
        raise HTTPException(404, str(e))
    logger.info("manual sync user=%s integration=%s result=%s", user.id, integ.id, result)
    return {"success": True, "synced": result}
