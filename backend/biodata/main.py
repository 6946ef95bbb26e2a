"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from biodata.api import ops, search
from biodata.api.errors import install_error_handlers
from biodata.infra import postgres
from biodata.obs import init as obs_init
from biodata.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	if settings.search_backend != "memory":
		await postgres.init_pool()
	logger.info("biodata.startup env=%s search_backend=%s", settings.environment, settings.search_backend)
	try:
		yield
	finally:
		await postgres.close_pool()


app = FastAPI(title="Biodata Directory Search", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(search.router, tags=["search"])
app.include_router(ops.router, tags=["ops"])
