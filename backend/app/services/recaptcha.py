# services/recaptcha.py - Google reCAPTCHA v3 server-side check
import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from app.core.config import Settings, settings as default_settings

logger = logging.getLogger("storefront.recaptcha")


class RecaptchaResult(BaseModel):
    success: bool
    score: Optional[float] = None
    error: Optional[str] = None


class RecaptchaVerifier:
    def __init__(self, config: Settings = default_settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    async def verify(self, token: Optional[str], expected_action: Optional[str] = None) -> RecaptchaResult:
        """
        Validate a v3 token with Google.
        Passes with score 1.0 when no secret is configured.
        """
        if not self.config.RECAPTCHA_SECRET_KEY:
            logger.warning("[reCAPTCHA] RECAPTCHA_SECRET_KEY not configured, skipping verification")
            return RecaptchaResult(success=True, score=1.0)

        if not token:
            return RecaptchaResult(success=False, error="No reCAPTCHA token provided")

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                response = await client.post(
                    self.config.RECAPTCHA_VERIFY_URL,
                    data={"secret": self.config.RECAPTCHA_SECRET_KEY, "response": token},
                )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[reCAPTCHA] Verification error: {e}")
            return RecaptchaResult(success=False, error="reCAPTCHA verification request failed")

        if not isinstance(data, dict):
            return RecaptchaResult(success=False, error="reCAPTCHA verification request failed")

        score = data.get("score")
        if not data.get("success"):
            return RecaptchaResult(success=False, score=score, error="reCAPTCHA verification failed")

        if expected_action and data.get("action") != expected_action:
            return RecaptchaResult(success=False, score=score, error="reCAPTCHA action mismatch")

        if score is None or score < self.config.RECAPTCHA_MIN_SCORE:
            logger.warning(f"[reCAPTCHA] Low score: {score} for action: {data.get('action')}")
            return RecaptchaResult(success=False, score=score, error="reCAPTCHA score too low")

        return RecaptchaResult(success=True, score=score)


def get_recaptcha_verifier() -> RecaptchaVerifier:
    return RecaptchaVerifier()
