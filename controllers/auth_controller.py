import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends

from helpers.facebook_store import FacebookStore, get_store
from helpers.token_helper import get_current_user, get_identity
from models.auth import User

auth_router = APIRouter()
logger = logging.getLogger("auth")


def _user_out(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "uid": user.external_uid,
        "email": user.email,
        "display_name": user.display_name,
        "photo_url": user.photo_url,
    }


# ////////////////////////////  Sign-in sync  /////////////////////////////////////////////////
@auth_router.post("/auth/sync")
async def sync_user(
    identity: Annotated[Dict[str, Any], Depends(get_identity)],
    store: Annotated[FacebookStore, Depends(get_store)],
):
    """
    Called by the frontend after every sign-in: creates the user on first
    login and refreshes email / name / photo afterwards.
    """
    if not identity.get("email"):
        logger.warning("sign-in sync skipped, no email uid=%s", identity["uid"])
        return {"success": False, "detail": "Identity has no email"}

    user, created = await store.upsert_user(
        external_uid=identity["uid"],
        email=identity["email"],
        display_name=identity.get("name"),
        photo_url=identity.get("picture"),
    )
    logger.info("user synced uid=%s created=%s", user.external_uid, created)
    return {"success": True, "created": created, "user": _user_out(user)}


@auth_router.get("/auth/me")
async def me(user: Annotated[User, Depends(get_current_user)]):
    return {"success": True, "user": _user_out(user)}
