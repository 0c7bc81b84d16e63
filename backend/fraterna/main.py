"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fraterna import obs
from fraterna.api import chat, locations, ops, profile, social, verification
from fraterna.api.errors import install_error_handlers
from fraterna.domain.chat.sockets import ChatNamespace, set_namespace as set_chat_namespace
from fraterna.domain.proximity import sockets as map_sockets
from fraterna.domain.proximity.changes import ChangeListener
from fraterna.domain.proximity.sockets import MapNamespace
from fraterna.domain.social.sockets import SocialNamespace, set_namespace as set_social_namespace
from fraterna.infra import postgres
from fraterna.infra.scheduler import JobScheduler
from fraterna.maintenance.retention import purge_expired_messages
from fraterna.obs import tracing
from fraterna.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	worker_tasks: list[asyncio.Task] = []
	scheduler: JobScheduler | None = None
	listener = ChangeListener(map_sockets.notify_change)
	worker_tasks.append(asyncio.create_task(listener.run_forever(), name="location-change-listener"))
	if settings.workers_enabled:
		scheduler = JobScheduler()
		scheduler.start()
		scheduler.schedule_every(
			"retention-purge",
			purge_expired_messages,
			hours=settings.retention_purge_interval_hours,
		)
		app.state.scheduler = scheduler
	app.state.change_listener = listener
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		listener.stop()
		for task in worker_tasks:
			task.cancel()
		await asyncio.gather(*worker_tasks, return_exceptions=True)
		tracing.shutdown_tracing()
		await postgres.close_pool()


app = FastAPI(title="Fraterna API", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:5173"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:5173", "http://127.0.0.1:5173"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs.install_middleware(app)
obs.init(app)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
map_namespace = MapNamespace()
sio.register_namespace(map_namespace)
map_sockets.set_namespace(map_namespace)
social_namespace = SocialNamespace()
sio.register_namespace(social_namespace)
set_social_namespace(social_namespace)
chat_namespace = ChatNamespace()
sio.register_namespace(chat_namespace)
set_chat_namespace(chat_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)

app.include_router(locations.router, tags=["locations"])
app.include_router(profile.router, tags=["profile"])
app.include_router(social.router, tags=["social"])
app.include_router(chat.router, tags=["chat"])
app.include_router(verification.router, tags=["verification"])
app.include_router(ops.router, tags=["ops"])
