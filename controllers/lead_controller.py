# controllers/lead_controller.py
import logging
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from helpers.facebook_store import FacebookStore, get_store
from helpers.token_helper import get_current_user
from integrations.facebook import to_integration_lead
from models.auth import User
from models.facebook import LeadStatus

router = APIRouter()
logger = logging.getLogger("leads")

IN_PROGRESS = {LeadStatus.CONTACTED.value, LeadStatus.QUALIFIED.value}


class LeadStatusPayload(BaseModel):
    status: LeadStatus


def _matches(lead: Dict[str, Any], status: Optional[str], search: Optional[str]) -> bool:
    if status and status != "all" and lead["status"] != status:
        return False
    if search:
        term = search.strip().lower()
        name = lead["name"]
        email = lead["email"]
        hit = (isinstance(name, str) and term in name.lower()) or (
            isinstance(email, str) and term in email.lower()
        )
        if not hit:
            return False
    return True


def _counts(leads: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        "total": len(leads),
        "new": sum(1 for lead in leads if lead["status"] == LeadStatus.NEW.value),
        "in_progress": sum(1 for lead in leads if lead["status"] in IN_PROGRESS),
        "converted": sum(1 for lead in leads if lead["status"] == LeadStatus.CONVERTED.value),
    }


@router.get("/leads")
async def list_leads(
    user: Annotated[User, Depends(get_current_user)],
    store: Annotated[FacebookStore, Depends(get_store)],
    status: Optional[str] = Query(None, description="new|contacted|qualified|converted|all"),
    search: Optional[str] = Query(None, description="Case-insensitive match on name or email"),
):
    integrations = await store.active_integrations_for_user(user.id)
    rows = await store.fetch_leads([i.id for i in integrations])
    leads = [to_integration_lead(r).model_dump() for r in rows]
    filtered = [lead for lead in leads if _matches(lead, status, search)]
    return {"success": True, "leads": filtered, "counts": _counts(leads)}


@router.patch("/leads/{lead_id}/status")
async def update_lead_status(
    lead_id: int,
    payload: LeadStatusPayload,
    user: Annotated[User, Depends(get_current_user)],
    store: Annotated[FacebookStore, Depends(get_store)],
):
    lead = await store.get_user_lead(user.id, lead_id)
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    lead.status = payload.status
    await lead.save()
    logger.info("lead status changed lead=%s user=%s status=%s", lead.id, user.id, payload.status.value)
    return {"success": True, "lead": to_integration_lead(lead).model_dump()}
