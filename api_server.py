#!/usr/bin/env python
"""
API server entrypoint for the Creator Commerce backend
"""
import logging
import os
import sys

import uvicorn

from creator_commerce.app import app  # noqa: F401
from creator_commerce.config import config

logger = logging.getLogger(__name__)


if __name__ == "__main__":
    logger.info("=" * 50)
    logger.info("Creator Commerce API - Starting Up")
    logger.info("=" * 50)
    logger.info(f"Python version: {sys.version}")
    logger.info(f"Working directory: {os.getcwd()}")
    logger.info(f"ENV: {config.ENV}")
    logger.info(f"DATABASE_URL: {'PostgreSQL' if config.is_postgres else 'SQLite'}")
    logger.info(f"Scheduler enabled: {config.ENABLE_SCHEDULER}")
    logger.info(f"Health check endpoint: http://0.0.0.0:{config.PORT}/health")
    logger.info("=" * 50)

    try:
        uvicorn.run(
            app,
            host="0.0.0.0",
            port=config.PORT,
            log_config=None,  # keep the structured logging handlers
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        sys.exit(1)
