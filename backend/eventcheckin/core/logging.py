import logging
import sys
from logging.handlers import RotatingFileHandler

from eventcheckin.core.config import settings

def setup_logging():
    """Configure application logging"""

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Remove existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)

    # File handler (optional, skipped when the log path is not writable)
    file_handler = None
    if settings.LOG_FILE:
        try:
            file_handler = RotatingFileHandler(
                settings.LOG_FILE,
                maxBytes=10485760,  # 10MB
                backupCount=5
            )
        except OSError as e:
            logger.warning(f"File logging disabled ({settings.LOG_FILE}): {e}")

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    if file_handler:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Silence noisy libraries
    logging.getLogger('uvicorn').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy').setLevel(logging.WARNING)
