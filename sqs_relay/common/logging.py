import logging
import os

logger = logging.getLogger("sqs_relay")


def configure_logging(level: str | None = None) -> logging.Logger:
    """
    Sets up the root handler once; payloads are dicts, so the format stays flat.
    LOG_LEVEL=DEBUG turns on per-header and response-preview output.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return logger
