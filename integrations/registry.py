# integrations/registry.py
from typing import Optional

from fastapi import Depends, HTTPException, Request

from helpers.facebook_graph import FacebookGraph
from helpers.facebook_store import FacebookStore
from helpers.settings import Settings
from integrations.base import IntegrationRegistry
from integrations.facebook import FacebookAdapter
from integrations.whatsapp import WhatsAppIntegration


def build_registry(
    settings: Settings,
    graph: FacebookGraph,
    store: Optional[FacebookStore] = None,
) -> IntegrationRegistry:
    """
    The fixed set of adapters this build ships with.
    """
    registry = IntegrationRegistry()
    registry.register(FacebookAdapter(graph=graph, settings=settings, store=store or FacebookStore()))
    registry.register(
        WhatsAppIntegration(
            client_id=settings.whatsapp_client_id,
            public_base_url=settings.public_base_url,
        )
    )
    return registry


# ---------- FastAPI dependencies ----------
def get_registry(request: Request) -> IntegrationRegistry:
    return request.app.state.registry


def get_facebook(registry: IntegrationRegistry = Depends(get_registry)) -> FacebookAdapter:
    adapter = registry.get("facebook")
    if adapter is None:
        raise HTTPException(404, "Facebook integration is not available")
    return adapter
