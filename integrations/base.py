# integrations/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class IntegrationError(Exception):
    """An integration operation could not be completed (unknown id, failed read/write)."""


class IntegrationStatus(BaseModel):
    is_connected: bool
    connection_id: Optional[int] = None
    account_name: Optional[str] = None
    account_id: Optional[str] = None
    last_sync: Optional[str] = None
    error: Optional[str] = None


class IntegrationMetric(BaseModel):
    name: str
    value: float
    change: Optional[float] = None
    change_type: Optional[Literal["increase", "decrease"]] = None
    period: str
    date: str


class IntegrationLead(BaseModel):
    id: str
    source: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    status: Literal["new", "contacted", "qualified", "converted"] = "new"


class BaseIntegration(ABC):
    """
    Capability set every data source adapter implements, so routers can treat
    Facebook, WhatsApp, ... interchangeably.

    `user_id` is the identity provider uid (the same value round-tripped as
    OAuth state); `integration_id` is the stored connection's primary key.
    """

    name: str = "base"
    display_name: str = ""
    description: str = ""
    icon: str = ""
    color: str = ""

    @abstractmethod
    async def connect(self, user_id: str) -> str:
        """Authorization URL for the provider. No network call, no writes."""

    @abstractmethod
    async def disconnect(self, integration_id: int) -> None:
        ...

    @abstractmethod
    async def get_metrics(self, integration_id: int) -> List[IntegrationMetric]:
        ...

    @abstractmethod
    async def get_leads(self, integration_id: int) -> List[IntegrationLead]:
        ...

    @abstractmethod
    async def is_connected(self, user_id: str) -> bool:
        ...

    @abstractmethod
    async def get_connection_status(self, user_id: str) -> IntegrationStatus:
        ...

    def describe(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
        }


class IntegrationRegistry:
    """
    Name -> adapter map. Built once at startup and handed to whoever needs it.
    """

    def __init__(self) -> None:
        self._integrations: Dict[str, BaseIntegration] = {}

    def register(self, integration: BaseIntegration) -> None:
        self._integrations[integration.name] = integration

    def get(self, name: str) -> Optional[BaseIntegration]:
        return self._integrations.get(name)

    def get_all(self) -> List[BaseIntegration]:
        return list(self._integrations.values())

    def get_available(self) -> List[BaseIntegration]:
        return [i for i in self.get_all() if i.name != "base"]

    def is_available(self, name: str) -> bool:
        return self.get(name) is not None
