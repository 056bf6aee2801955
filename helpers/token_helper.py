import jwt
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from models.auth import User

logger = logging.getLogger("auth")
bearer = HTTPBearer(auto_error=False)


def _jwt_key(secret: Optional[str]) -> str:
    if not secret:
        raise HTTPException(status_code=500, detail="JWT_SECRET is not configured")
    return secret


def generate_user_token(
    uid: str,
    email: str,
    secret: str,
    name: Optional[str] = None,
    picture: Optional[str] = None,
) -> str:
    payload = {
        "uid": uid,
        "email": email,
        "name": name,
        "picture": picture,
        "iat": int(datetime.now(timezone.utc).timestamp()),
    }
    return jwt.encode(payload, _jwt_key(secret), algorithm="HS256")


def decode_user_token(token: str, secret: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, _jwt_key(secret), algorithms=["HS256"])
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not payload.get("uid"):
        raise HTTPException(status_code=401, detail="Token has no uid")
    return payload


async def get_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Dict[str, Any]:
    """
    Claims of the identity provider token; the user row may not exist yet.
    """
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return decode_user_token(credentials.credentials, request.app.state.settings.jwt_secret)


async def get_current_user(identity: Dict[str, Any] = Depends(get_identity)) -> User:
    user = await User.get_or_none(external_uid=identity["uid"])
    if not user:
        logger.info("token for unsynced user uid=%s", identity["uid"])
        raise HTTPException(status_code=401, detail="User does not exist")
    return user
