"""
Configuration management for the fashion product scraper.
Handles environment variables and scraper settings.
"""
import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Scraper configuration loaded from environment variables."""

    # Server settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json or console

    # Time budgets (seconds)
    DEFAULT_TIMEOUT_SECONDS: float = float(os.getenv("DEFAULT_TIMEOUT_SECONDS", "30"))
    STRATEGY_TIMEOUT_SECONDS: float = float(os.getenv("STRATEGY_TIMEOUT_SECONDS", "15"))

    # Redirect hop cap for a single acquisition attempt
    MAX_REDIRECTS: int = int(os.getenv("MAX_REDIRECTS", "5"))

    # Emulating client fingerprint profile (curl_cffi impersonation target)
    IMPERSONATE_PROFILE: str = os.getenv("IMPERSONATE_PROFILE", "chrome131")

    # External fingerprint-matching executable used by the delegating client
    FINGERPRINT_BINARY_PATH: str = os.getenv(
        "FINGERPRINT_BINARY_PATH", "/opt/curl_chrome131_android"
    )

    # Optional strategy inputs - loaded from environment, NEVER hardcoded
    PROXY_URL: Optional[str] = os.getenv("PROXY_URL") or None
    BROWSER_WORKER_URL: Optional[str] = os.getenv("BROWSER_WORKER_URL") or None

    @classmethod
    def is_proxy_configured(cls) -> bool:
        """Check if a proxy endpoint is configured for the proxied emulating client."""
        return bool(cls.PROXY_URL)

    @classmethod
    def is_browser_worker_configured(cls) -> bool:
        """Check if a headless-browser worker endpoint is configured."""
        return bool(cls.BROWSER_WORKER_URL)

    @classmethod
    def is_fingerprint_binary_available(cls) -> bool:
        """
        Check if the delegating client's executable exists and is executable.

        A missing binary does not disable the strategy; its attempts fail
        fast with subprocess_unavailable and are recorded like any other failure.
        """
        path = cls.FINGERPRINT_BINARY_PATH
        return bool(path) and os.path.isfile(path) and os.access(path, os.X_OK)


config = Config()
