import logging
import os


SERVICE_NAME = os.getenv("SETTLEMENT_SERVICE_NAME", "group-settlement")
LOG_LEVEL = os.getenv("SETTLEMENT_LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("SETTLEMENT_CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("settlement").setLevel(level)
