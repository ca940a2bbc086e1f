"""
Webhook Security Module

Shared-secret verification for the email provider webhooks and the
reminder ops trigger. Secrets are optional: when one is not configured
verification is skipped with a warning.
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request

from . import config

logger = logging.getLogger(__name__)

WEBHOOK_TOKEN_HEADER = "X-Webhook-Token"
CRON_SECRET_HEADER = "X-Cron-Secret"


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def verify_shared_secret(provided: Optional[str], secret: Optional[str], source: str) -> None:
    """Raise 401 unless `provided` matches `secret`. No-op when `secret` is unset."""
    if not secret:
        logger.warning(f"⚠️ Secret for {source} not configured - verification skipped")
        return
    if not provided:
        logger.warning(f"🚫 Missing token on {source} request")
        raise HTTPException(status_code=401, detail="Missing webhook token")
    if not constant_time_compare(provided, secret):
        logger.warning(f"🚫 Invalid token on {source} request")
        raise HTTPException(status_code=401, detail="Invalid webhook token")


async def verify_email_webhook(request: Request) -> None:
    """Dependency for the inbound and event webhooks (token query param or header)"""
    provided = request.query_params.get("token") or request.headers.get(WEBHOOK_TOKEN_HEADER)
    verify_shared_secret(provided, config.EMAIL_WEBHOOK_SECRET, "email webhook")


async def verify_cron_request(request: Request) -> None:
    """Dependency for the reminder ops trigger (bearer token or X-Cron-Secret header)"""
    provided = bearer_token(request) or request.headers.get(CRON_SECRET_HEADER)
    verify_shared_secret(provided, config.CRON_SECRET, "reminder trigger")
