"""Coalescing re-fetch scheduler for change notifications.

States:
	idle -> fetching                 first notification after the debounce window,
	                                 or an explicit refresh
	fetching -> fetching_with_pending  any notification while a fetch is in flight
	fetching_with_pending -> fetching  in-flight fetch finished, exactly one more starts
	fetching -> idle                 in-flight fetch finished with nothing pending

At most one fetch runs at a time and every notification is followed by at
least one fetch that started after it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.6


class RefreshState(str, Enum):
	IDLE = "idle"
	FETCHING = "fetching"
	FETCHING_WITH_PENDING = "fetching_with_pending"


class RefreshCoordinator:
	def __init__(
		self,
		fetch: Callable[[], Awaitable[None]],
		*,
		debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
		name: str = "map-refresh",
	) -> None:
		self._fetch = fetch
		self._debounce = max(0.0, float(debounce_seconds))
		self._name = name
		self._state = RefreshState.IDLE
		self._timer: Optional[asyncio.TimerHandle] = None
		self._task: Optional[asyncio.Task] = None
		self._settled = asyncio.Event()
		self._settled.set()
		self._closed = False
		self.fetch_count = 0

	@property
	def state(self) -> RefreshState:
		return self._state

	@property
	def debounce_pending(self) -> bool:
		return self._timer is not None

	def notify(self) -> None:
		"""Record a change notification."""
		if self._closed:
			return
		if self._state is RefreshState.IDLE:
			if self._timer is not None:
				self._timer.cancel()
			self._settled.clear()
			self._timer = asyncio.get_running_loop().call_later(self._debounce, self._start)
			return
		self._state = RefreshState.FETCHING_WITH_PENDING

	def request_refresh(self) -> None:
		"""Fetch now, skipping the debounce window."""
		if self._closed:
			return
		if self._state is RefreshState.IDLE:
			self._start()
			return
		self._state = RefreshState.FETCHING_WITH_PENDING

	def _start(self) -> None:
		if self._timer is not None:
			self._timer.cancel()
			self._timer = None
		if self._closed or self._state is not RefreshState.IDLE:
			return
		self._state = RefreshState.FETCHING
		self._settled.clear()
		self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)

	async def _run(self) -> None:
		try:
			while True:
				self.fetch_count += 1
				try:
					await self._fetch()
				except asyncio.CancelledError:
					raise
				except Exception:
					logger.exception("refresh_fetch_failed", extra={"coordinator": self._name})
				if self._closed or self._state is not RefreshState.FETCHING_WITH_PENDING:
					break
				self._state = RefreshState.FETCHING
		finally:
			self._state = RefreshState.IDLE
			self._task = None
			if self._timer is None:
				self._settled.set()

	async def wait_idle(self) -> None:
		"""Block until no fetch is running or scheduled."""
		await self._settled.wait()

	async def close(self) -> None:
		self._closed = True
		if self._timer is not None:
			self._timer.cancel()
			self._timer = None
		task = self._task
		if task is not None:
			task.cancel()
			with suppress(asyncio.CancelledError):
				await task
		self._state = RefreshState.IDLE
		self._settled.set()
