# highlevel_auth/webhooks/endpoints.py
import base64
import logging
from typing import Optional

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import ValidationError

from ..auth.models import PrincipalKind
from ..auth.refresh import TokenRefreshEngine
from ..errors import HighLevelError
from ..storage.storage_interfaces import application_id_from_client_id
from .models import MarketplaceWebhookEvent, WebhookResult

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-wh-signature"


def verify_signature(payload: bytes, signature: str, public_key_pem: str) -> bool:
    """Check a base64 RSA-SHA256 (PKCS#1 v1.5) signature over the raw request body."""
    try:
        public_key = serialization.load_pem_public_key(public_key_pem.encode("utf-8"))
        if not isinstance(public_key, rsa.RSAPublicKey):
            logger.error("Webhook public key is not an RSA key.")
            return False
        public_key.verify(base64.b64decode(signature), payload, padding.PKCS1v15(), hashes.SHA256())
        return True
    except InvalidSignature:
        return False
    except (ValueError, UnsupportedAlgorithm) as e:
        logger.error(f"Error verifying webhook signature: {e}")
        return False


def build_webhook_router(
    refresh_engine: TokenRefreshEngine,
    client_id: Optional[str] = None,
    webhook_public_key: Optional[str] = None,
    prefix: str = "/webhooks"
) -> APIRouter:
    """
    Router that keeps stored sessions in step with app installs.

    INSTALL for a location mints and stores a Location session from the
    stored Company session; UNINSTALL removes the stored session.
    """
    router = APIRouter(prefix=prefix, tags=["Marketplace Webhooks"])
    expected_app_id = application_id_from_client_id(client_id) if client_id else None

    @router.post(
        "/highlevel",
        response_model=WebhookResult,
        status_code=status.HTTP_200_OK,
        summary="Handle marketplace INSTALL and UNINSTALL events."
    )
    async def handle_marketplace_webhook(request: Request) -> WebhookResult:
        raw_body = await request.body()

        signature = request.headers.get(SIGNATURE_HEADER)
        if signature and webhook_public_key:
            if not verify_signature(raw_body, signature, webhook_public_key):
                logger.warning("Invalid webhook signature.")
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid webhook signature."
                )
        else:
            logger.warning("Skipping signature verification - missing signature or public key.")

        try:
            event = MarketplaceWebhookEvent.model_validate_json(raw_body)
        except ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Malformed webhook payload: {e.errors()}"
            ) from e

        logger.debug(f"Webhook received: type={event.type}, app={event.app_id}")

        if expected_app_id and event.app_id != expected_app_id:
            logger.warning("App ID mismatch, skipping webhook processing.")
            return WebhookResult(status="ignored", event_type=event.type, detail="app id mismatch")

        if event.type == "INSTALL":
            return await _handle_install(refresh_engine, event)
        if event.type == "UNINSTALL":
            resource_id = event.location_id or event.company_id
            if not resource_id:
                return WebhookResult(status="ignored", event_type=event.type, detail="no resource id")
            await refresh_engine.store.delete_session(resource_id)
            logger.info(f"Removed session for '{resource_id}' after uninstall.")
            return WebhookResult(status="processed", event_type=event.type, resource_id=resource_id)

        return WebhookResult(status="ignored", event_type=event.type)

    return router


async def _handle_install(refresh_engine: TokenRefreshEngine, event: MarketplaceWebhookEvent) -> WebhookResult:
    company_id, location_id = event.company_id, event.location_id
    if not (company_id and location_id):
        return WebhookResult(status="ignored", event_type=event.type, detail="not a location install")

    try:
        company_token = await refresh_engine.get_access_token(company_id)
        if not company_token:
            logger.warning(
                f"Company token not found for companyId: {company_id}, "
                f"skipping location access token generation."
            )
            return WebhookResult(
                status="skipped",
                event_type=event.type,
                resource_id=location_id,
                detail="no company session stored"
            )
        grant = await refresh_engine.oauth_endpoint.issue_subordinate_credential(
            company_token, company_id, location_id
        )
        await refresh_engine.persist_grant(
            location_id, grant, principal_kind=PrincipalKind.LOCATION, parent_id=company_id
        )
    except HighLevelError as e:
        logger.error(f"Failed to generate location access token for '{location_id}': {e.message}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to generate location access token: {e.message}"
        ) from e

    logger.info(f"Location access token generated and stored for location: {location_id}")
    return WebhookResult(status="processed", event_type=event.type, resource_id=location_id)
