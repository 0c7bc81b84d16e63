"""JSON log lines for the API.

Every record carries the request context bound by the HTTP middleware.
Extras are scrubbed before serialisation: credentials, message bodies and
anything that looks like a coordinate never reach the log sink, since a
member's position is only ever shared through the visibility filter.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from fraterna.settings import settings

try:  # pragma: no cover - otel optional
	from opentelemetry import trace as otel_trace
except ImportError:  # pragma: no cover - optional dependency
	otel_trace = None  # type: ignore

ROOT_LOGGER = "fraterna"
REDACTED = "[redacted]"

_request_id: ContextVar[Optional[str]] = ContextVar("fraterna_request_id", default=None)
_route: ContextVar[Optional[str]] = ContextVar("fraterna_route", default=None)
_user_id: ContextVar[Optional[str]] = ContextVar("fraterna_user_id", default=None)
_client_ip: ContextVar[Optional[str]] = ContextVar("fraterna_client_ip", default=None)

_CONTEXT_FIELDS: Dict[str, ContextVar[Optional[str]]] = {
	"request_id": _request_id,
	"route": _route,
	"user_id": _user_id,
	"ip": _client_ip,
}

SECRET_MARKERS = frozenset({"token", "secret", "authorization", "password", "answers"})
CONTENT_MARKERS = frozenset({"body", "email", "content"})
LOCATION_MARKERS = frozenset({"lat", "lng", "lon", "latitude", "longitude", "geo", "coords", "position"})

STRING_LIMIT = 256
ITEM_LIMIT = 10

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def bind_context(
	*,
	request_id: Optional[str] = None,
	route: Optional[str] = None,
	user_id: Optional[str] = None,
	client_ip: Optional[str] = None,
) -> Dict[str, Token]:
	"""Set request fields for the current task; pass the result to reset_context."""
	wanted = {"request_id": request_id, "route": route, "user_id": user_id, "ip": client_ip}
	tokens: Dict[str, Token] = {}
	for name, value in wanted.items():
		if value is not None:
			tokens[name] = _CONTEXT_FIELDS[name].set(value)
	return tokens


def reset_context(tokens: Dict[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT_FIELDS[name].reset(token)


def current_request_id() -> Optional[str]:
	return _request_id.get()


def _is_sensitive(key: str) -> bool:
	lowered = key.lower()
	parts = set(lowered.replace("-", "_").split("_"))
	if parts & LOCATION_MARKERS:
		return True
	return any(marker in lowered for marker in SECRET_MARKERS | CONTENT_MARKERS)


def _clip(items: Iterable[Any], size: int) -> list:
	clipped = [scrub(None, item) for item in list(items)[:ITEM_LIMIT]]
	if size > ITEM_LIMIT:
		clipped.append(f"+{size - ITEM_LIMIT} more")
	return clipped


def scrub(key: Optional[str], value: Any) -> Any:
	"""Redact or shorten a single extra field."""
	if key is not None and _is_sensitive(key):
		return REDACTED
	if isinstance(value, str) and len(value) > STRING_LIMIT:
		return value[:STRING_LIMIT] + "…"
	if isinstance(value, dict):
		kept = list(value.items())[:ITEM_LIMIT]
		out = {str(k): scrub(str(k), v) for k, v in kept}
		if len(value) > ITEM_LIMIT:
			out["…"] = f"+{len(value) - ITEM_LIMIT} keys"
		return out
	if isinstance(value, (list, tuple, set, frozenset)):
		return _clip(value, len(value))
	return value


def _span_fields() -> Dict[str, str]:
	if otel_trace is None:
		return {}
	ctx = otel_trace.get_current_span().get_span_context()
	if not getattr(ctx, "is_valid", False):
		return {}
	return {"trace_id": format(ctx.trace_id, "032x"), "span_id": format(ctx.span_id, "016x")}


class JSONLogFormatter(logging.Formatter):
	"""One compact JSON object per record."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		line: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		line.update({name: var.get() for name, var in _CONTEXT_FIELDS.items() if var.get()})
		line.update(_span_fields())
		if record.exc_info:
			line["exc_info"] = self.formatException(record.exc_info)
		extras = {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS and not k.startswith("_")}
		for key, value in extras.items():
			line[key] = scrub(key, value)
		return json.dumps(line, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of INFO records; other levels always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = min(1.0, max(0.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	for existing in list(root.handlers):
		root.removeHandler(existing)
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or ROOT_LOGGER)
