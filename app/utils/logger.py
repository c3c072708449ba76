import logging
import sys
from pathlib import Path

from app.core.config import Settings


def setup_logger(settings: Settings) -> logging.Logger:
    handlers = [logging.StreamHandler(sys.stdout)]

    if settings.LOG_FILE:
        # Create logs directory
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    # Configure logging
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    logger = logging.getLogger("contacts")
    return logger
