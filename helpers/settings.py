# helpers/settings.py
from __future__ import annotations

import os
from typing import List, Optional


def get_env(name: str, default: Optional[str] = None, required: bool = False) -> str:
    val = os.getenv(name, default)
    if required and not val:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val or ""


class Settings:
    """
    Runtime configuration for the dashboard backend.

    Usage:
        settings = Settings.from_env()  # reads PUBLIC_BASE_URL, DASHBOARD_URL, JWT_SECRET, ...
    """

    CALLBACK_PATH = "/api/facebook/connect/callback"

    def __init__(
        self,
        public_base_url: str,
        dashboard_url: Optional[str] = None,
        jwt_secret: str = "",
        cors_origins: Optional[List[str]] = None,
        log_level: str = "INFO",
        whatsapp_client_id: str = "",
    ):
        if not public_base_url:
            raise RuntimeError("Settings requires public_base_url")
        self.public_base_url = public_base_url.rstrip("/")
        self.dashboard_url = (dashboard_url or f"{self.public_base_url}/dashboard").rstrip("/")
        self.jwt_secret = jwt_secret
        self.cors_origins = cors_origins or ["*"]
        self.log_level = log_level.upper()
        self.whatsapp_client_id = whatsapp_client_id

    @property
    def facebook_redirect_uri(self) -> str:
        return f"{self.public_base_url}{self.CALLBACK_PATH}"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create settings from env vars:
          - PUBLIC_BASE_URL (required)
          - DASHBOARD_URL (optional; defaults to {PUBLIC_BASE_URL}/dashboard)
          - JWT_SECRET (required)
          - CORS_ORIGINS (optional; comma separated)
          - LOG_LEVEL (optional; defaults to INFO)
          - WHATSAPP_CLIENT_ID (optional)
        """
        origins = [o.strip() for o in get_env("CORS_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            public_base_url=get_env("PUBLIC_BASE_URL", required=True),
            dashboard_url=get_env("DASHBOARD_URL") or None,
            jwt_secret=get_env("JWT_SECRET", required=True),
            cors_origins=origins,
            log_level=get_env("LOG_LEVEL", "INFO"),
            whatsapp_client_id=get_env("WHATSAPP_CLIENT_ID"),
        )
