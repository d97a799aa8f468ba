"""PaymentGate: the paid-join saga from order creation to joiner write."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NoReturn, Optional, Tuple

from floc.domain.activities.models import is_joined
from floc.domain.activities.service import ActivityParticipationEngine
from floc.domain.exceptions import NotFound, PaymentNotRequired, PermissionDenied, VerificationFailed
from floc.domain.payments import audit
from floc.domain.payments.models import PAYMENT_ORDERS, OrderStatus, PaymentOrder, new_order_id
from floc.domain.payments.signature import verify
from floc.domain.users import service as users_service
from floc.infra.auth import AuthenticatedUser, require_actor
from floc.infra.clock import now_iso
from floc.infra.documents import DocRef, DocumentStore, Transaction, documents
from floc.settings import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConfirmResult:
	order: PaymentOrder
	recorded: bool
	connected_to_owner: bool = False


def _load(txn: Transaction, order_id: str) -> PaymentOrder:
	doc = txn.get(PAYMENT_ORDERS, order_id)
	if doc is None:
		raise NotFound("order_missing")
	return PaymentOrder.from_document(order_id, doc)


class PaymentGate:
	"""Drives begin, confirm and cancel of a paid join.

	Order completion and the activity update are two separate writes. The
	order is always completed first, so the activity side can be re-derived
	from it by re-confirming or by ``PaymentSweeper.replay_completed_orders``.
	"""

	def __init__(
		self,
		store: DocumentStore = documents,
		engine: Optional[ActivityParticipationEngine] = None,
	) -> None:
		self._store = store
		self._engine = engine or ActivityParticipationEngine(store)

	async def get_order(self, order_id: str) -> Optional[PaymentOrder]:
		doc = await self._store.get(PAYMENT_ORDERS, order_id)
		if doc is None:
			return None
		return PaymentOrder.from_document(order_id, doc)

	async def begin(
		self,
		actor: Optional[AuthenticatedUser],
		activity_id: str,
		*,
		connect_to_owner: bool = False,
	) -> PaymentOrder:
		"""Create a ``created`` order with the activity's current price."""
		actor = require_actor(actor)
		activity = await self._engine.get(activity_id)
		if activity is None:
			raise NotFound("activity_missing")
		if not activity.is_paid or activity.user_id == actor.id or is_joined(activity, actor.id):
			raise PaymentNotRequired()

		user = await users_service.get_user(actor.id, store=self._store)
		order = PaymentOrder(
			order_id=new_order_id(),
			amount=activity.cost or 0,
			currency=activity.currency or settings.default_currency,
			activity_id=activity.id,
			user_id=actor.id,
			status=OrderStatus.CREATED,
			activity_name=activity.name,
			email=actor.email,
			username=(user.username if user else None) or actor.username,
			connect_to_owner=connect_to_owner,
			created_at=now_iso(),
		)
		await self._store.set(PAYMENT_ORDERS, order.order_id, order.to_document())
		audit.inc_order(OrderStatus.CREATED.value)
		await audit.log_payment_event(
			"order_created",
			{"order_id": order.order_id, "activity_id": activity.id, "user_id": actor.id, "amount": order.amount},
		)
		return order

	async def confirm(
		self,
		actor: Optional[AuthenticatedUser],
		order_id: str,
		*,
		payment_id: str,
		signature: str,
		activity_id: Optional[str] = None,
	) -> ConfirmResult:
		"""Verify the processor callback, complete the order, then record the join.

		Safe to repeat with the same payment id: the order stays as it is and the
		joiner write is skipped once the order has been applied.
		"""
		actor = require_actor(actor)
		order = await self.get_order(order_id)
		if order is None:
			raise NotFound("order_missing")
		if order.user_id != actor.id:
			self._reject("user_mismatch")
		if activity_id and activity_id != order.activity_id:
			self._reject("activity_mismatch")
		if not verify(order_id, payment_id, signature):
			self._reject("bad_signature")

		completed_at = now_iso()

		def _complete(txn: Transaction) -> Tuple[PaymentOrder, bool]:
			current = _load(txn, order_id)
			if current.is_completed:
				if current.payment_id != payment_id:
					raise VerificationFailed("payment_mismatch")
				return current, False
			# Cancelled or expired orders still complete: the money has moved.
			txn.update(
				PAYMENT_ORDERS,
				order_id,
				{
					"status": OrderStatus.COMPLETED.value,
					"paymentId": payment_id,
					"signature": signature,
					"completedAt": completed_at,
				},
			)
			return _load(txn, order_id), True

		try:
			order, completed_now = await self._store.run_transaction([DocRef(PAYMENT_ORDERS, order_id)], _complete)
		except VerificationFailed as exc:
			audit.inc_verify_failure(exc.reason)
			raise
		if completed_now:
			audit.inc_order(OrderStatus.COMPLETED.value)
			await audit.log_payment_event(
				"order_completed",
				{"order_id": order_id, "activity_id": order.activity_id, "user_id": order.user_id},
			)

		connected = False
		if order.connect_to_owner:
			activity = await self._engine.get(order.activity_id)
			if activity is not None and activity.user_id != actor.id:
				connected = await self._engine.ensure_owner_connection(actor, activity.user_id)
		recorded = await self.apply_completed_order(order)
		return ConfirmResult(order=order, recorded=recorded, connected_to_owner=connected)

	async def apply_completed_order(self, order: PaymentOrder) -> bool:
		"""Write the joiner entry a completed order stands for, at most once per order."""
		return await self._engine.record_paid_join(
			order.activity_id,
			order.user_id,
			email=order.email,
			username=order.username,
			amount=order.amount,
			payment_id=order.payment_id or "",
			order_id=order.order_id,
			paid_at=order.completed_at or now_iso(),
			order_ref=DocRef(PAYMENT_ORDERS, order.order_id),
		)

	async def cancel(self, actor: Optional[AuthenticatedUser], order_id: str) -> PaymentOrder:
		"""Abandon a ``created`` order. Any other status is left as it is."""
		actor = require_actor(actor)
		cancelled_at = now_iso()

		def _cancel(txn: Transaction) -> Tuple[PaymentOrder, bool]:
			current = _load(txn, order_id)
			if current.user_id != actor.id:
				raise PermissionDenied("order_forbidden")
			if current.status is not OrderStatus.CREATED:
				return current, False
			txn.update(
				PAYMENT_ORDERS,
				order_id,
				{"status": OrderStatus.CANCELLED.value, "cancelledAt": cancelled_at},
			)
			return _load(txn, order_id), True

		order, cancelled = await self._store.run_transaction([DocRef(PAYMENT_ORDERS, order_id)], _cancel)
		if cancelled:
			audit.inc_order(OrderStatus.CANCELLED.value)
			await audit.log_payment_event("order_cancelled", {"order_id": order_id, "user_id": actor.id})
		return order

	def _reject(self, reason: str) -> NoReturn:
		audit.inc_verify_failure(reason)
		logger.warning("payment_verification_failed", extra={"reason": reason})
		raise VerificationFailed(reason)
