# app/core/security.py
import base64
import hashlib
import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request, status

from app.core.config import settings

logger = logging.getLogger(__name__)

HMAC_HEADER = "X-Shopify-Hmac-Sha256"


class WebhookAuthError(Exception):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Webhook authentication failed"


class MissingSignature(WebhookAuthError):
    detail = "Missing HMAC"


class MissingBody(WebhookAuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Missing body"


class SignatureMismatch(WebhookAuthError):
    detail = "Invalid HMAC"


def compute_signature(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(
    raw_body: Optional[bytes],
    claimed: Optional[str],
    secret: str,
) -> None:
    """
    HMAC-SHA256 en base64 sobre los bytes crudos del body, comparado en tiempo
    constante. Sin secreto configurado nada se autentica.
    """
    if not claimed:
        raise MissingSignature()
    if not raw_body:
        raise MissingBody()
    if not secret:
        raise SignatureMismatch()

    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected.encode("ascii"), claimed.encode("utf-8")):
        raise SignatureMismatch()


async def verify_shopify_webhook(request: Request) -> bytes:
    """
    Dependencia FastAPI para las rutas de webhooks. Lee el body crudo antes de
    cualquier parseo y devuelve esos mismos bytes a la ruta.
    """
    raw_body = await request.body()
    try:
        verify_webhook_signature(
            raw_body,
            request.headers.get(HMAC_HEADER),
            settings.SHOPIFY_API_SECRET,
        )
    except WebhookAuthError as e:
        logger.warning(f"🚫 Webhook rechazado ({request.url.path}): {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return raw_body
