# integrations/whatsapp.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List
from urllib.parse import urlencode

from integrations.base import (
    BaseIntegration,
    IntegrationError,
    IntegrationLead,
    IntegrationMetric,
    IntegrationStatus,
)

WHATSAPP_AUTH_URL = "https://business.whatsapp.com/oauth/authorize"
WHATSAPP_PERMISSIONS = ("whatsapp_business_messaging",)
NOT_IMPLEMENTED = "WhatsApp integration is not implemented yet"


class WhatsAppIntegration(BaseIntegration):
    """
    Placeholder for WhatsApp Business. Builds an authorization URL but has no
    callback, storage or sync behind it yet.
    """

    name = "whatsapp"
    display_name = "WhatsApp Business"
    description = "WhatsApp Business API integration for messages and leads"
    icon = "MessageCircle"
    color = "#25D366"

    def __init__(self, client_id: str, public_base_url: str):
        self.client_id = client_id
        self.redirect_uri = f"{public_base_url.rstrip('/')}/api/whatsapp/connect/callback"

    async def connect(self, user_id: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": ",".join(WHATSAPP_PERMISSIONS),
            "response_type": "code",
            "state": user_id,
        }
        return f"{WHATSAPP_AUTH_URL}?{urlencode(params)}"

    async def disconnect(self, integration_id: int) -> None:
        raise IntegrationError(NOT_IMPLEMENTED)

    async def get_metrics(self, integration_id: int) -> List[IntegrationMetric]:
        today = datetime.now(timezone.utc).date().isoformat()
        return [
            IntegrationMetric(name=name, value=0, change=0, change_type="increase", period="day", date=today)
            for name in ("Messages Sent", "Messages Delivered", "Messages Read")
        ]

    async def get_leads(self, integration_id: int) -> List[IntegrationLead]:
        return []

    async def is_connected(self, user_id: str) -> bool:
        return False

    async def get_connection_status(self, user_id: str) -> IntegrationStatus:
        return IntegrationStatus(is_connected=False, error=NOT_IMPLEMENTED)
