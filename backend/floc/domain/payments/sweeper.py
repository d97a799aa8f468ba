"""Operational sweeps over payment orders."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from floc.domain.activities.service import ActivityParticipationEngine
from floc.domain.payments import audit
from floc.domain.payments.models import PAYMENT_ORDERS, OrderStatus, PaymentOrder
from floc.domain.payments.service import PaymentGate
from floc.infra.clock import parse_iso, to_iso, utcnow
from floc.infra.documents import DocRef, DocumentStore, Transaction, documents
from floc.settings import settings

logger = logging.getLogger(__name__)


class PaymentSweeper:
	def __init__(
		self,
		store: DocumentStore = documents,
		engine: Optional[ActivityParticipationEngine] = None,
		*,
		ttl_seconds: Optional[int] = None,
	) -> None:
		self._store = store
		self._engine = engine or ActivityParticipationEngine(store)
		self._gate = PaymentGate(store, self._engine)
		self._ttl_seconds = ttl_seconds

	async def expire_stale_orders(self, *, now: Optional[datetime] = None) -> int:
		"""Mark ``created`` orders older than the order TTL as ``expired``."""
		now = now or utcnow()
		ttl = self._ttl_seconds if self._ttl_seconds is not None else settings.payment_order_ttl_seconds
		cutoff = now - timedelta(seconds=ttl)
		expired_at = to_iso(now)
		expired = 0
		for order_id in await self._store.where(PAYMENT_ORDERS, "status", OrderStatus.CREATED.value):

			def _expire(txn: Transaction, order_id: str = order_id) -> bool:
				doc = txn.get(PAYMENT_ORDERS, order_id)
				if doc is None:
					return False
				order = PaymentOrder.from_document(order_id, doc)
				if order.status is not OrderStatus.CREATED or not order.created_at:
					return False
				if parse_iso(order.created_at) >= cutoff:
					return False
				txn.update(PAYMENT_ORDERS, order_id, {"status": OrderStatus.EXPIRED.value, "expiredAt": expired_at})
				return True

			if await self._store.run_transaction([DocRef(PAYMENT_ORDERS, order_id)], _expire):
				expired += 1
				audit.inc_order(OrderStatus.EXPIRED.value)
		if expired:
			logger.info("payment_orders_expired", extra={"count": expired})
		return expired

	async def replay_completed_orders(self) -> int:
		"""Apply completed orders whose activity write never happened.

		An order counts as handled once ``appliedAt`` is set, so a paid user who
		later left the activity is not joined again.
		"""
		replayed = 0
		order_ids = await self._store.where(PAYMENT_ORDERS, "status", OrderStatus.COMPLETED.value)
		docs = await self._store.get_many(PAYMENT_ORDERS, order_ids)
		for order_id, doc in docs.items():
			order = PaymentOrder.from_document(order_id, doc)
			if order.applied_at:
				continue
			if await self._engine.get(order.activity_id) is None:
				logger.warning("completed_order_without_activity", extra={"order": order_id, "activity": order.activity_id})
				continue
			if await self._gate.apply_completed_order(order):
				replayed += 1
		if replayed:
			logger.info("payment_orders_replayed", extra={"count": replayed})
		return replayed
