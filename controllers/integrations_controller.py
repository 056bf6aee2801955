# controllers/integrations_controller.py
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from helpers.token_helper import get_current_user
from integrations.base import BaseIntegration, IntegrationError, IntegrationRegistry
from integrations.registry import get_registry
from models.auth import User

router = APIRouter()
logger = logging.getLogger("integrations")


def _resolve(registry: IntegrationRegistry, name: str) -> BaseIntegration:
    integration = registry.get(name.lower())
    if integration is None or integration.name == "base":
        raise HTTPException(404, f"Unknown integration: {name}")
    return integration


async def _connection_id(integration: BaseIntegration, user: User) -> int:
    status = await integration.get_connection_status(user.external_uid)
    if not status.is_connected or status.connection_id is None:
        raise HTTPException(404, f"Not connected to {integration.name}.")
    return status.connection_id


@router.get("/integrations")
async def list_integrations(
    user: Annotated[User, Depends(get_current_user)],
    registry: IntegrationRegistry = Depends(get_registry),
):
    items = []
    for integration in registry.get_available():
        status = await integration.get_connection_status(user.external_uid)
        items.append({**integration.describe(), "status": status.model_dump()})
    return {"success": True, "integrations": items}


@router.get("/integrations/{name}/status")
async def integration_status(
    name: str,
    user: Annotated[User, Depends(get_current_user)],
    registry: IntegrationRegistry = Depends(get_registry),
):
    integration = _resolve(registry, name)
    status = await integration.get_connection_status(user.external_uid)
    return {"success": True, "status": status.model_dump()}


@router.get("/integrations/{name}/metrics")
async def integration_metrics(
    name: str,
    user: Annotated[User, Depends(get_current_user)],
    registry: IntegrationRegistry = Depends(get_registry),
):
    integration = _resolve(registry, name)
    connection_id = await _connection_id(integration, user)
    try:
        metrics = await integration.get_metrics(connection_id)
    except IntegrationError as e:
        raise HTTPException(400, str(e))
    return {"success": True, "metrics": [m.model_dump() for m in metrics]}


@router.get("/integrations/{name}/leads")
async def integration_leads(
    name: str,
    user: Annotated[User, Depends(get_current_user)],
    registry: IntegrationRegistry = Depends(get_registry),
):
    integration = _resolve(registry, name)
    connection_id = await _connection_id(integration, user)
    try:
        leads = await integration.get_leads(connection_id)
    except IntegrationError as e:
        raise HTTPException(400, str(e))
    return {"success": True, "leads": [lead.model_dump() for lead in leads]}


@router.delete("/integrations/{name}")
async def disconnect_integration(
    name: str,
    user: Annotated[User, Depends(get_current_user)],
    registry: IntegrationRegistry = Depends(get_registry),
):
    integration = _resolve(registry, name)
    connection_id = await _connection_id(integration, user)
    try:
        await integration.disconnect(connection_id)
    except IntegrationError as e:
        raise HTTPException(400, str(e))
    logger.info("disconnected integration=%s user=%s", name, user.id)
    return {"success": True, "message": f"Disconnected {integration.display_name}."}
