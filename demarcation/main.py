# demarcation/main.py
"""
FastAPI entrypoint for the land demarcation portal.

- configures logging once from LOG_LEVEL
- creates tables and optional seed data on startup
- mounts the auth, citizen, officer, admin, geography and document routers
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from demarcation import config
from demarcation.db import SessionLocal, init_models
from demarcation.errors import register_error_handlers
from demarcation.routes import admin, auth, citizen, documents, geography, officer
from demarcation.services.users import ensure_bootstrap_admin
from demarcation.services.villages import seed_demo_geography

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

    async with SessionLocal() as session:
        await ensure_bootstrap_admin(session)
        if config.SEED_DEMO_DATA:
            await seed_demo_geography(session)

    logger.info("demarcation portal started")
    yield


# ----------------------------------------------------------------------
# Create single FastAPI app and configure
# ----------------------------------------------------------------------
app = FastAPI(title="Land Demarcation Portal API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(citizen.router)
app.include_router(officer.router)
app.include_router(admin.router)
app.include_router(geography.router)
app.include_router(documents.router)


@app.get("/health")
def health():
    return {"status": "ok"}


def run():
    import uvicorn

    uvicorn.run("demarcation.main:app", host="0.0.0.0", port=8000)
