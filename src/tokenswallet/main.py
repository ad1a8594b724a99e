"""Main entry point - runs the API server."""

import logging

import uvicorn

from tokenswallet.api.app import create_app
from tokenswallet.config import get_settings

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    settings = get_settings()
    log_level = logging.DEBUG if settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main():
    """Main entry point."""
    configure_logging()
    settings = get_settings()

    logger.info("Starting tokenswallet...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"API server on {settings.api_host}:{settings.api_port}")

    try:
        uvicorn.run(
            create_app(),
            host=settings.api_host,
            port=settings.api_port,
            log_level="info" if not settings.debug else "debug",
        )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")


if __name__ == "__main__":
    main()
