import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

logging.basicConfig(level=logging.INFO, format='%(asctime)s run_dev - [%(levelname)s] - %(message)s')
logger = logging.getLogger("run_dev")

TRUTHY = {"true", "1", "yes", "on"}

if __name__ == "__main__":
    # .env values must be in the environment before highlevel_auth.settings is imported by the factory
    load_dotenv(dotenv_path=Path(__file__).parent / ".env", override=True)

    host = os.getenv("DEV_SERVER_HOST", "127.0.0.1")
    port = int(os.getenv("DEV_SERVER_PORT", "8000"))
    reload = os.getenv("DEV_SERVER_RELOAD", "false").lower() in TRUTHY

    logger.info(
        f"Serving webhooks on {host}:{port} with the "
        f"'{os.getenv('HIGHLEVEL_STORAGE_BACKEND', 'memory')}' store (reload: {reload})"
    )
    uvicorn.run(
        "highlevel_auth.webhooks.app:create_app",
        factory=True,
        host=host,
        port=port,
        log_level=os.getenv("DEV_SERVER_LOG_LEVEL", "info").lower(),
        reload=reload,
    )
