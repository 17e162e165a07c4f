"""Process-wide logging setup, called once by each service factory."""
import logging

from storefront.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def configure_logging(level: str = None) -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # uvicorn already logs every request line
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True
