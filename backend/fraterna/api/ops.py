"""Operations endpoints: health probes and the Prometheus scrape target."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from fraterna.obs import health
from fraterna.settings import settings

router = APIRouter(tags=["ops"])


def _presented_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	scheme, _, credential = (authorization or "").partition(" ")
	if scheme.lower() == "bearer" and credential:
		return credential.strip()
	return None


async def require_admin(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	expected = settings.obs_admin_token
	if not expected:
		# an unset token locks the ops surface instead of opening it
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	presented = _presented_token(x_admin_token, authorization)
	if presented is None or not hmac.compare_digest(presented, expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if not settings.obs_metrics_public:
		await require_admin(x_admin_token=x_admin_token, authorization=authorization)


@router.get("/health/live")
async def health_live() -> dict:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready(request: Request) -> Response:
	code, payload = await health.readiness(getattr(request.app.state, "change_listener", None))
	return JSONResponse(content=payload, status_code=code)


@router.get("/health/startup")
async def health_startup() -> Response:
	code, payload = await health.startup()
	return JSONResponse(content=payload, status_code=code)


@router.get("/metrics", dependencies=[Depends(require_metrics_access)])
async def prometheus_metrics() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
