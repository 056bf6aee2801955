# main.py
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from helpers.facebook_graph import FacebookGraph
from helpers.facebook_store import FacebookStore
from helpers.settings import Settings
from helpers.tortoise_config import close_db, init_db
from integrations.registry import build_registry

# ----- Routers / controllers -----
from controllers.auth_controller import auth_router
from controllers.facebook_controller import router as facebook_router
from controllers.integrations_controller import router as integrations_router
from controllers.lead_controller import router as lead_router

settings = Settings.from_env()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("app")

graph = FacebookGraph.from_env()
store = FacebookStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("database ready")
    yield
    await graph.aclose()
    await close_db()


app = FastAPI(lifespan=lifespan)
app.state.settings = settings
app.state.store = store
app.state.registry = build_registry(settings=settings, graph=graph, store=store)

# ----- Middlewares -----
app.add_middleware(TrustedHostMiddleware, allowed_hosts=["*"])
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----- Routers -----
app.include_router(auth_router, prefix="/api", tags=["Authentication"])
app.include_router(facebook_router, prefix="/api", tags=["Facebook Routes"])
app.include_router(integrations_router, prefix="/api", tags=["Integrations"])
app.include_router(lead_router, prefix="/api", tags=["Leads Controller"])


# ----- Root -----
@app.get("/")
def greetings():
    return {"Message": "CRM dashboard API is running"}
