# core/auth.py
import asyncio
import logging
from typing import Callable, Optional, Awaitable

from fastapi import HTTPException, status
from firebase_admin import auth

from app.core.firebase import get_db, init_firebase

logger = logging.getLogger("storefront")

STAFF_ROLES = {"admin", "staff"}


def _check_staff_sync(token: str) -> dict:
    # Token verification needs the Admin SDK app; a broken setup is a 500, not a 401
    try:
        init_firebase()
    except Exception as e:
        logger.error(f"[Notifications] Firebase unavailable: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to verify admin role")

    try:
        decoded = auth.verify_id_token(token)
    except Exception as e:
        logger.warning(f"[Notifications] Auth failed: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    uid = decoded.get("uid")
    if not uid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        profile = get_db().collection("profiles").document(uid).get()
    except Exception as e:
        logger.error(f"[Notifications] Profile lookup failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to verify admin role")

    role = (profile.to_dict() or {}).get("role") if profile.exists else None
    if role not in STAFF_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden - Admin access required")

    return {"uid": uid, "role": role}


async def require_staff(authorization: Optional[str]) -> dict:
    """
    Validate a `Bearer <firebase id token>` header for an admin/staff profile.
    Raises 401 / 403 / 500 as HTTPException.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return await asyncio.to_thread(_check_staff_sync, token)


StaffCheck = Callable[[Optional[str]], Awaitable[dict]]


def get_staff_check() -> StaffCheck:
    return require_staff
