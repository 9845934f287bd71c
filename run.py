"""
Entry point: serve the Mini-App API with the scheduled-content sweeps.

Usage::

    python run.py
"""

import logging
import sys

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from src.api import create_app  # noqa: E402
from src.config import get_settings, validate_env  # noqa: E402
from src.exceptions import ConfigurationError  # noqa: E402
from src.logging import configure_logging  # noqa: E402

logger = logging.getLogger("run")


def main() -> None:
    try:
        settings = get_settings()
        validate_env(strict=True)
    except ConfigurationError as exc:
        configure_logging()
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    configure_logging(settings.log_level)
    logger.info(
        "Starting server on port %d (environment=%s)",
        settings.port,
        settings.environment,
    )
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(0)
