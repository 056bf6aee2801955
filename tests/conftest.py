"""Shared test fixtures."""
from datetime import date

import httpx
import pytest
from fastapi import FastAPI
from tortoise import Tortoise

from controllers.auth_controller import auth_router
from controllers.facebook_controller import router as facebook_router
from controllers.integrations_controller import router as integrations_router
from controllers.lead_controller import router as lead_router
from helpers.facebook_graph import FacebookGraph
from helpers.facebook_store import FacebookStore
from helpers.settings import Settings
from helpers.token_helper import generate_user_token
from integrations.facebook import INSIGHT_METRICS, FacebookAdapter
from integrations.registry import build_registry
from models.auth import User
from models.facebook import FacebookIntegration

TODAY = date(2024, 3, 31)
PAGE_ID = "PAGE1"
PAGE_TOKEN = "PAGE-TOKEN"


class GraphStub:
    """
    Stands in for graph.facebook.com behind an httpx.MockTransport.

    `routes` maps (method, path-after-version) to a JSON body or an exception
    to raise; anything unrouted answers 404 with a Graph-style error body.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.split("/", 2)[2]
        key = (request.method, path)
        self.calls.append(key)
        self.requests.append(request)
        resp = self.routes.get(key)
        if resp is None:
            return httpx.Response(404, json={"error": {"message": f"unrouted {path}", "code": 803}})
        if isinstance(resp, Exception):
            raise resp
        return httpx.Response(200, json=resp)

    def called(self, path: str) -> bool:
        return any(p == path for _, p in self.calls)


def insights_body(metric, values):
    return {
        "data": [
            {
                "name": metric,
                "period": "day",
                "values": [{"value": v, "end_time": f"{d}T07:00:00+0000"} for d, v in values],
            }
        ]
    }


@pytest.fixture
async def db():
    """Tortoise on an in-memory SQLite database with the schema generated."""
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": ["models.auth", "models.facebook"]})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def graph_stub():
    return GraphStub()


@pytest.fixture
async def graph(graph_stub):
    client = httpx.AsyncClient(transport=httpx.MockTransport(graph_stub.handler))
    g = FacebookGraph(app_id="app-id", app_secret="app-secret", version="v18.0", client=client)
    yield g
    await g.aclose()


@pytest.fixture
def settings():
    return Settings(public_base_url="https://crm.example.com", jwt_secret="test-secret")


@pytest.fixture
def adapter(graph, settings):
    return FacebookAdapter(graph=graph, settings=settings, store=FacebookStore(), today=lambda: TODAY)


@pytest.fixture
async def user(db):
    return await User.create(external_uid="uid-1", email="ana@example.com", display_name="Ana")


@pytest.fixture
async def integration(user):
    return await FacebookIntegration.create(
        user=user,
        page_id=PAGE_ID,
        page_name="Acme Bakery",
        access_token=PAGE_TOKEN,
        permissions=["pages_show_list"],
    )


@pytest.fixture
def stub_insights(graph_stub):
    """Two daily points for every metric."""
    def _stub(values=(("2024-03-29", 10), ("2024-03-30", 12))):
        for metric in INSIGHT_METRICS:
            graph_stub.routes[("GET", f"{PAGE_ID}/insights/{metric}")] = insights_body(metric, values)
    return _stub


@pytest.fixture
def stub_leads(graph_stub):
    def _stub(leads=None):
        graph_stub.routes[("GET", f"{PAGE_ID}/leadgen_forms")] = {"data": [{"id": "F1", "name": "Spring promo"}]}
        graph_stub.routes[("GET", "F1/leads")] = {
            "data": leads
            if leads is not None
            else [
                {
                    "id": "L1",
                    "created_time": "2024-03-10T12:00:00+0000",
                    "field_data": [
                        {"name": "full_name", "values": ["Ana Souza"]},
                        {"name": "email", "values": ["ana@example.com"]},
                        {"name": "phone_number", "values": ["+5511999990000"]},
                        {"name": "city", "values": []},
                    ],
                },
                {
                    "id": "L2",
                    "created_time": "2024-03-12T09:30:00+0000",
                    "field_data": [
                        {"name": "full_name", "values": ["Bruno Lima"]},
                        {"name": "email", "values": ["bruno@example.com"]},
                    ],
                },
            ]
        }
    return _stub


@pytest.fixture
def store():
    return FacebookStore()


@pytest.fixture
def registry(settings, graph, store):
    reg = build_registry(settings=settings, graph=graph, store=store)
    # pin the clock used by the Facebook adapter
    reg.get("facebook")._today = lambda: TODAY
    return reg


@pytest.fixture
def app(settings, registry, store):
    """API app without lifespan; the db fixture owns Tortoise."""
    app = FastAPI()
    app.state.settings = settings
    app.state.store = store
    app.state.registry = registry
    app.include_router(auth_router, prefix="/api")
    app.include_router(facebook_router, prefix="/api")
    app.include_router(integrations_router, prefix="/api")
    app.include_router(lead_router, prefix="/api")
    return app


@pytest.fixture
async def client(app, db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def auth_headers(settings):
    def _make(uid="uid-1", email="ana@example.com", name="Ana", picture=None):
        token = generate_user_token(
            uid=uid, email=email, secret=settings.jwt_secret, name=name, picture=picture
        )
        return {"Authorization": f"Bearer {token}"}
    return _make
