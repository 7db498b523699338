"""
Logging setup for the API entrypoint.
"""

import logging

# Client libraries that log every request at INFO.
_NOISY_LOGGERS = ("chromadb", "httpx", "sentence_transformers")


def configure_logging(level: str = "INFO") -> None:
    numeric_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
