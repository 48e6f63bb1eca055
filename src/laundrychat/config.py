"""Environment-based configuration and logging setup."""

import logging
import os
import sys
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Runtime settings, read from the environment (and a `.env` file if present)."""

    def __init__(self):
        load_dotenv()

        self.API_URL: str = os.getenv(
            "LAUNDRYCHAT_API_URL", "http://localhost:5000/api"
        ).rstrip("/")
        self.SOCKET_URL: str = os.getenv("LAUNDRYCHAT_SOCKET_URL") or socket_url_for(
            self.API_URL
        )
        self.API_TOKEN: Optional[str] = os.getenv("LAUNDRYCHAT_API_TOKEN")
        self.LOG_LEVEL: str = os.getenv("LAUNDRYCHAT_LOG_LEVEL", "INFO").upper()
        self.BATCH_UNREAD: bool = _flag("LAUNDRYCHAT_BATCH_UNREAD", "true")

    def validate(self) -> None:
        """Validate URL settings."""
        bad = [
            name
            for name, value in (("API_URL", self.API_URL), ("SOCKET_URL", self.SOCKET_URL))
            if urlparse(value).scheme not in ("http", "https") or not urlparse(value).netloc
        ]
        if bad:
            raise ValueError(f"Malformed URL settings: {', '.join(bad)}")


def socket_url_for(api_url: str) -> str:
    """The socket server lives at the API host without the `/api` suffix."""
    url = api_url.rstrip("/")
    if url.endswith("/api"):
        url = url[: -len("/api")]
    return url


def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Send package logs to stdout with a timestamped format."""
    level = (level or get_settings().LOG_LEVEL).upper()
    logger = logging.getLogger("laundrychat")
    if not any(getattr(h, "_laundrychat", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handler._laundrychat = True
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level, logging.INFO))
