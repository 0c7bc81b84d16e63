"""Change-notification channel for the location data set.

Messages carry a small JSON body for debugging only; listeners treat every
message as "something changed, re-fetch".
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Callable, Optional

from fraterna.infra.redis import redis_client
from fraterna.obs import metrics as obs_metrics
from fraterna.settings import settings

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 1.0


async def publish_change(kind: str, subject_id: Optional[str] = None) -> None:
	"""Announce a write that may change someone's visible set.

	Delivery is best effort: a Redis outage must not fail the write itself.
	"""
	message = json.dumps({"kind": kind, "subject": subject_id, "ts": int(time.time() * 1000)})
	try:
		await redis_client.publish(settings.location_changes_channel, message)
	except Exception:
		logger.warning("location_change_publish_failed", extra={"kind": kind}, exc_info=True)
		return
	obs_metrics.inc_location_change("published")


class ChangeListener:
	"""Subscribe to the change channel and invoke ``on_change`` per message."""

	def __init__(
		self,
		on_change: Callable[[], None],
		*,
		channel: Optional[str] = None,
		reconnect_delay: float = RECONNECT_DELAY_SECONDS,
	) -> None:
		self._on_change = on_change
		self._channel = channel or settings.location_changes_channel
		self._reconnect_delay = reconnect_delay
		self._running = False
		self.subscribed = asyncio.Event()

	def stop(self) -> None:
		self._running = False

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			try:
				await self._listen()
			except asyncio.CancelledError:
				raise
			except Exception:
				logger.warning("location_change_listener_error", exc_info=True)
				self.subscribed.clear()
				await asyncio.sleep(self._reconnect_delay)

	async def _listen(self) -> None:
		pubsub = redis_client.pubsub()
		try:
			await pubsub.subscribe(self._channel)
			self.subscribed.set()
			logger.info("location_change_listener_subscribed", extra={"channel": self._channel})
			while self._running:
				message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
				if message is None or message.get("type") != "message":
					continue
				obs_metrics.inc_location_change("received")
				self._dispatch()
		finally:
			self.subscribed.clear()
			await pubsub.aclose()

	def _dispatch(self) -> None:
		try:
			self._on_change()
		except Exception:
			logger.exception("location_change_callback_failed")
