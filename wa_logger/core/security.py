"""
HMAC-SHA256 signature validation for the transport event bridge.
"""
import hashlib
import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request

from wa_logger.core.config import Settings, get_settings
from wa_logger.core.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Signature"


def compute_signature(secret: str, body: bytes) -> str:
    """
    Compute HMAC-SHA256 signature for the given body.

    Args:
        secret: The webhook secret key
        body: Raw request body bytes

    Returns:
        Hex-encoded HMAC-SHA256 signature
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256
    ).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Verify HMAC-SHA256 signature using constant-time comparison."""
    expected_signature = compute_signature(secret, body)
    return hmac.compare_digest(expected_signature, signature)


def _reject(reason: str) -> HTTPException:
    logger.warning(f"Event bridge request rejected: {reason}")
    return HTTPException(status_code=401, detail="invalid signature")


async def get_validated_body(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> bytes:
    """
    FastAPI dependency returning the raw body once its signature checks out.

    Raises:
        HTTPException: 401 if the signature is missing or invalid, or no
            secret is configured
    """
    signature: Optional[str] = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise _reject(f"missing {SIGNATURE_HEADER} header")

    if not settings.is_webhook_secret_configured:
        logger.error("WEBHOOK_SECRET environment variable not configured")
        raise HTTPException(status_code=401, detail="invalid signature")

    body = await request.body()
    if not verify_signature(settings.webhook_secret, body, signature):
        raise _reject(f"signature mismatch ({signature[:16]}...)")

    logger.debug("Event bridge signature verified")
    return body
