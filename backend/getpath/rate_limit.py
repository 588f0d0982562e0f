from __future__ import annotations
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
	"""Single-slot throttle: provider calls start at least `min_interval` seconds apart.

	Callers are serialized through one lock, so concurrent requests queue up
	behind each other instead of bursting. State lives in memory only.
	"""

	def __init__(
		self,
		min_interval: float,
		*,
		clock: Callable[[], float] = time.monotonic,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	) -> None:
		self.min_interval = max(0.0, float(min_interval))
		self._clock = clock
		self._sleep = sleep
		self._last_call: Optional[float] = None
		self._lock: Optional[asyncio.Lock] = None

	async def wait_for_slot(self) -> float:
		"""Suspend until the interval has elapsed, then claim the slot. Returns seconds waited."""
		if self._lock is None:
			self._lock = asyncio.Lock()
		async with self._lock:
			waited = 0.0
			if self._last_call is not None:
				remaining = self.min_interval - (self._clock() - self._last_call)
				if remaining > 0:
					logger.info("Rate limiting: waiting %.0fms", remaining * 1000)
					await self._sleep(remaining)
					waited = remaining
			self._last_call = self._clock()
			return waited

	def reset(self) -> None:
		self._last_call = None
