#!/usr/bin/env python3
"""
Backend entry point for the Visual Regression Toolkit server.

Starts the FastAPI server with host, port and data directory taken from
environment variables, for container or standalone deployments.
"""

import logging
import os
import sys
import traceback

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def global_exception_handler(exc_type, exc_value, exc_tb):
    """Log unhandled exceptions before the process exits"""
    logger.error("=" * 60)
    logger.error("UNHANDLED EXCEPTION - Backend is crashing!")
    logger.error("=" * 60)
    logger.error(f"Type: {exc_type.__name__}")
    logger.error(f"Value: {exc_value}")
    logger.error("Traceback:")
    for line in traceback.format_tb(exc_tb):
        for subline in line.strip().split("\n"):
            logger.error(f"  {subline}")
    logger.error("=" * 60)
    sys.stdout.flush()
    sys.stderr.flush()


sys.excepthook = global_exception_handler


def main():
    """Start the FastAPI backend server."""
    import uvicorn

    from regression_toolkit.core.config import get_settings

    settings = get_settings()
    host = os.environ.get("REGRESSION_TOOLKIT_HOST", settings.api_host)
    port = int(os.environ.get("REGRESSION_TOOLKIT_PORT", settings.api_port))

    data_dir = os.environ.get("REGRESSION_TOOLKIT_DATA")
    if data_dir:
        logger.info(f"Using data directory: {data_dir}")

    logger.info(f"Starting Visual Regression Toolkit backend on {host}:{port}")

    try:
        from regression_toolkit.api.app import app

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            reload=False,
            workers=1,
            access_log=True,
        )
    except KeyboardInterrupt:
        logger.info("Backend shutdown requested")
    except Exception as e:
        logger.error(f"Failed to start backend: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
