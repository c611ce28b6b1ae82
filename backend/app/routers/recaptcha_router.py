# routers/recaptcha_router.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.rate_limit import rate_limit
from app.services.recaptcha import RecaptchaVerifier, get_recaptcha_verifier

router = APIRouter(prefix="/recaptcha", tags=["reCAPTCHA"])
logger = logging.getLogger("storefront.recaptcha")


class RecaptchaRequest(BaseModel):
    token: Optional[str] = None
    action: Optional[str] = None


@router.post("/verify", dependencies=[Depends(rate_limit("default"))])
async def verify_recaptcha(
    body: RecaptchaRequest,
    verifier: RecaptchaVerifier = Depends(get_recaptcha_verifier),
):
    if not body.token:
        return JSONResponse({"success": False, "error": "Missing reCAPTCHA token"}, status_code=400)

    try:
        result = await verifier.verify(body.token, body.action)
    except Exception as e:
        logger.error(f"[reCAPTCHA API] Error: {e}", exc_info=True)
        return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)

    if not result.success:
        return JSONResponse({"success": False, "error": result.error or "Verification failed"}, status_code=403)

    return {"success": True, "score": result.score}
