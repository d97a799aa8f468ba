"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from floc import workers
from floc.api import activities, connections, ops, payments, users
from floc.api.errors import install_error_handlers
from floc.infra.redis import redis_client
from floc.obs import init as obs_init
from floc.obs import logging as obs_logging
from floc.settings import settings

logger = obs_logging.get_logger("floc.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
	logger.info(
		"startup",
		extra={"environment": settings.environment, "write_mode": settings.connection_write_mode},
	)
	tasks: list[asyncio.Task] = []
	if settings.connection_sweep_interval_seconds > 0:
		tasks.append(
			asyncio.create_task(
				workers.run_connection_sweeper(settings.connection_sweep_interval_seconds),
				name="connection-sweeper",
			)
		)
	if settings.payment_sweep_interval_seconds > 0:
		tasks.append(
			asyncio.create_task(
				workers.run_payment_sweeper(settings.payment_sweep_interval_seconds),
				name="payment-sweeper",
			)
		)
	try:
		yield
	finally:
		for task in tasks:
			task.cancel()
		await asyncio.gather(*tasks, return_exceptions=True)
		await redis_client.aclose()


app = FastAPI(title="Floc", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(users.router)
app.include_router(connections.router)
app.include_router(activities.router)
app.include_router(payments.router)
app.include_router(ops.router)
