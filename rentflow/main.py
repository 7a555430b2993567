"""Main application entry point."""

import logging
import os

import uvicorn
from dotenv import load_dotenv

from rentflow.config import get_settings
from rentflow.services.logging import setup_server_logging


def main() -> None:
    """Load .env, configure logging and serve the API."""
    load_dotenv()
    settings = get_settings()
    setup_server_logging(log_file=settings.log_file, level_name=settings.log_level)
    logger = logging.getLogger(__name__)

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Starting rentflow API on {host}:{port}")

    from rentflow.api.app import app

    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
