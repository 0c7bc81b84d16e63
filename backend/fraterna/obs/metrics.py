"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"fraterna_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"fraterna_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"fraterna_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"fraterna_socketio_events_total",
	"Socket.IO events handled or emitted per namespace",
	["namespace", "event"],
)

LOCATION_PUBLISH = Counter(
	"fraterna_location_publish_total",
	"Own-location writes by result",
	["result"],
)

VISIBLE_FETCHES = Counter(
	"fraterna_visible_fetch_total",
	"Visible-set resolutions by result",
	["result"],
)

VISIBLE_RESULT_SIZE = Histogram(
	"fraterna_visible_result_size",
	"Number of locations returned per visible-set resolution",
	buckets=(0, 1, 2, 5, 10, 25, 50, 100, 250),
)

VISIBILITY_FAIL_CLOSED = Counter(
	"fraterna_visibility_fail_closed_total",
	"Candidates hidden because a privacy lookup failed or was incomplete",
	["reason"],
)

PROXIMITY_ALERTS = Counter(
	"fraterna_proximity_alerts_total",
	"Proximity alerts emitted to viewers",
)

REFRESH_FETCHES = Counter(
	"fraterna_map_refresh_fetch_total",
	"Map refresh fetches by source",
	["source"],
)

LOCATION_CHANGES = Counter(
	"fraterna_location_changes_total",
	"Location change notifications",
	["direction"],
)

CHAT_SENDS = Counter(
	"fraterna_chat_send_total",
	"Chat messages sent per channel",
	["channel"],
)

FRIEND_ACTIONS = Counter(
	"fraterna_friend_actions_total",
	"Friendship and allowlist transitions",
	["action"],
)

VERIFICATION_ATTEMPTS = Counter(
	"fraterna_verification_attempts_total",
	"Verification quiz attempts by result",
	["result"],
)

REDIS_UP = Gauge("fraterna_redis_up", "Redis reachability from the API process")
REDIS_LATENCY = Histogram("fraterna_redis_ping_seconds", "Redis ping latency")
POSTGRES_UP = Gauge("fraterna_postgres_up", "Postgres reachability from the API process")
POSTGRES_LATENCY = Histogram("fraterna_postgres_ping_seconds", "Postgres ping latency")

BACKGROUND_RUNS = Counter(
	"fraterna_background_job_runs_total",
	"Background job runs by result",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"fraterna_background_job_duration_seconds",
	"Background job durations",
	["name"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_location_publish(result: str) -> None:
	LOCATION_PUBLISH.labels(result=result).inc()


def observe_visible_fetch(result: str, size: int = 0) -> None:
	VISIBLE_FETCHES.labels(result=result).inc()
	if result == "ok":
		VISIBLE_RESULT_SIZE.observe(size)


def inc_fail_closed(reason: str) -> None:
	VISIBILITY_FAIL_CLOSED.labels(reason=reason).inc()


def inc_proximity_alerts(count: int = 1) -> None:
	if count > 0:
		PROXIMITY_ALERTS.inc(count)


def inc_refresh_fetch(source: str) -> None:
	REFRESH_FETCHES.labels(source=source).inc()


def inc_location_change(direction: str) -> None:
	LOCATION_CHANGES.labels(direction=direction).inc()


def inc_chat_send(channel: str) -> None:
	CHAT_SENDS.labels(channel=channel).inc()


def inc_friend_action(action: str) -> None:
	FRIEND_ACTIONS.labels(action=action).inc()


def inc_verification_attempt(result: str) -> None:
	VERIFICATION_ATTEMPTS.labels(result=result).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
