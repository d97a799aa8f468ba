"""Periodic background sweeps started from the application lifespan."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from redis.exceptions import RedisError

from floc.domain.connections.reconcile import ConnectionReconciler
from floc.domain.payments.sweeper import PaymentSweeper
from floc.infra.documents import StoreContention

logger = logging.getLogger(__name__)


async def _run_every(name: str, interval_s: int, job: Callable[[], Awaitable[object]]) -> None:
	interval = max(1, int(interval_s))
	while True:
		await asyncio.sleep(interval)
		try:
			await job()
		except (RedisError, StoreContention, OSError):
			logger.exception("%s iteration failed", name)


async def run_connection_sweeper(interval_s: int, reconciler: ConnectionReconciler | None = None) -> None:
	"""Roll forward pending edge intents and heal one-sided edges."""
	reconciler = reconciler or ConnectionReconciler()
	await _run_every("connection sweeper", interval_s, reconciler.sweep)


async def run_payment_sweeper(interval_s: int, sweeper: PaymentSweeper | None = None) -> None:
	"""Expire abandoned orders, then re-apply completed orders missing from their activity."""
	sweeper = sweeper or PaymentSweeper()

	async def _once() -> None:
		await sweeper.expire_stale_orders()
		await sweeper.replay_completed_orders()

	await _run_every("payment sweeper", interval_s, _once)
