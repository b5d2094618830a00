# highlevel_auth/webhooks/__init__.py
from .app import create_app
from .endpoints import build_webhook_router, verify_signature
from .models import MarketplaceWebhookEvent, WebhookResult

__all__ = [
    "create_app",
    "build_webhook_router",
    "verify_signature",
    "MarketplaceWebhookEvent",
    "WebhookResult",
]
