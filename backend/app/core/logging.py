# backend/app/core/logging.py
import logging
import sys
from typing import Optional

from backend.app.core.config import settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging once for the process.

    Modules log through ``logging.getLogger(__name__)``. Never pass plaintext
    secrets, hashes, ciphertext or key material to a logger.
    """
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=_FORMAT,
        stream=sys.stdout,
    )
    # SQL echo is controlled by DATABASE_ECHO, keep the engine logger quiet otherwise
    if not settings.DATABASE_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
