# highlevel_auth/webhooks/app.py
import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI

from ..settings import settings
from ..storage import create_credential_store
from ..transport.client import HighLevelClient
from .endpoints import build_webhook_router

logger = logging.getLogger(__name__)


def create_app(client: Optional[HighLevelClient] = None) -> FastAPI:
    """
    FastAPI application serving the marketplace webhook router.

    The client's credential store is initialized on startup and released
    on shutdown. Without an explicit client one is built from settings.
    """
    if client is None:
        client = HighLevelClient(store=create_credential_store())

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        logger.info("Application startup initiated.")
        await client.initialize()
        logger.info(f"Credential store ready ({client.store.kind}).")
        try:
            yield
        finally:
            logger.info("Application shutdown initiated.")
            await client.disconnect()

    app = FastAPI(title=settings.app_name, debug=settings.debug_mode, lifespan=lifespan)
    app.state.highlevel_client = client
    app.include_router(
        build_webhook_router(
            client.refresh_engine,
            client_id=client.credentials.client_id,
            webhook_public_key=settings.webhook_public_key,
        )
    )

    @app.get("/health")
    async def health_api() -> Dict[str, str]:
        return {"status": "ok", "store": client.store.kind}

    return app
