"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from fraterna.obs import logging as obs_logging
from fraterna.obs import middleware, tracing
from fraterna.settings import settings

_initialised = False


def init(app: FastAPI) -> None:
	global _initialised
	if _initialised or not settings.obs_enabled:
		return
	obs_logging.configure_logging()
	tracing.init_tracing(app)
	_initialised = True


def install_middleware(app: FastAPI) -> None:
	middleware.install(app, enabled=settings.obs_enabled)


__all__ = ["init", "install_middleware"]
