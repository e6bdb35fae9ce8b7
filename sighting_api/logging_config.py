import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the API process."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)

    # uvicorn access logs duplicate our request logging at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
