"""Activity participation engine: owns the joiner map and owner-only edits."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from floc.domain.activities import audit
from floc.domain.activities.models import (
	ACTIVITIES,
	Activity,
	JoinOutcome,
	JoinResult,
	PaymentRequired,
	PaymentStatus,
	is_joined,
)
from floc.domain.activities.schemas import ActivityCreateRequest, ActivityUpdateRequest
from floc.domain.connections.service import ConnectionGraphManager
from floc.domain.exceptions import AlreadyConnected, NotFound, PermissionDenied
from floc.domain.users import service as users_service
from floc.infra.auth import AuthenticatedUser, require_actor
from floc.infra.clock import now_iso, to_iso
from floc.infra.documents import DELETE_FIELD, DocRef, DocumentStore, Increment, Transaction, documents, field_path
from floc.settings import settings

logger = logging.getLogger(__name__)

_EDITABLE = {
	"name": "name",
	"location": "location",
	"description": "description",
	"is_private": "isPrivate",
}


def _load(txn: Transaction, activity_id: str) -> Activity:
	doc = txn.get(ACTIVITIES, activity_id)
	if doc is None:
		raise NotFound("activity_missing")
	return Activity.from_document(activity_id, doc)


def _payment_required(activity: Activity, user_id: str) -> PaymentRequired:
	return PaymentRequired(
		activity_id=activity.id,
		user_id=user_id,
		activity_name=activity.name,
		amount=activity.cost or 0,
		currency=activity.currency or settings.default_currency,
	)


class ActivityParticipationEngine:
	"""Create, edit and delete activities and drive the join/leave lifecycle.

	Joiner writes are field-level updates inside a per-document transaction,
	so concurrent joins by different users never clobber each other.
	"""

	def __init__(
		self,
		store: DocumentStore = documents,
		connections: Optional[ConnectionGraphManager] = None,
	) -> None:
		self._store = store
		self._connections = connections or ConnectionGraphManager(store)

	is_joined = staticmethod(is_joined)

	async def create(self, actor: Optional[AuthenticatedUser], payload: ActivityCreateRequest) -> str:
		actor = require_actor(actor)
		owner = await users_service.get_user(actor.id, store=self._store)
		username = (owner.username if owner else None) or actor.username
		now = now_iso()
		owner_entry: Dict[str, Any] = {"email": actor.email, "username": username, "joinedAt": now}
		doc: Dict[str, Any] = {
			"name": payload.name.strip(),
			"location": payload.location.strip(),
			"description": payload.description,
			"dateTime": to_iso(payload.date_time),
			"createdAt": now,
			"userId": actor.id,
			"createdBy": username or "Anonymous",
			"isPrivate": payload.is_private,
			"isPaid": payload.is_paid,
		}
		if payload.is_paid:
			doc["cost"] = payload.cost
			doc["currency"] = (payload.currency or settings.default_currency).upper()
			doc["paymentDetails"] = {"totalCollected": 0, "participantCount": 0}
			# Creators never pay.
			owner_entry.update({"paymentStatus": PaymentStatus.COMPLETED.value, "paidAmount": 0, "paidAt": now})
		doc["joiners"] = {actor.id: owner_entry}

		activity_id = await self._store.create(ACTIVITIES, doc)
		audit.inc_write("create", "ok")
		await audit.log_activity_event("create", {"activity_id": activity_id, "user_id": actor.id, "paid": payload.is_paid})
		logger.info("activity_created", extra={"activity": activity_id, "user": actor.id})
		return activity_id

	async def update(
		self,
		actor: Optional[AuthenticatedUser],
		activity_id: str,
		patch: ActivityUpdateRequest,
	) -> Activity:
		"""Owner-only edit. The joiner map is never touched."""
		actor = require_actor(actor)
		fields = patch.model_dump(exclude_unset=True, exclude_none=True)

		def _update(txn: Transaction) -> Activity:
			current = _load(txn, activity_id)
			if current.user_id != actor.id:
				raise PermissionDenied()
			changes: Dict[str, Any] = {
				_EDITABLE[key]: value.strip() if isinstance(value, str) and key != "description" else value
				for key, value in fields.items()
				if key in _EDITABLE
			}
			if "date_time" in fields:
				changes["dateTime"] = to_iso(fields["date_time"])
			paid = fields.get("is_paid", current.is_paid)
			changes["isPaid"] = paid
			if paid:
				if "cost" in fields:
					changes["cost"] = fields["cost"]
				elif current.cost is None:
					raise ValueError("cost is required for paid activities")
				currency = fields.get("currency") or current.currency or settings.default_currency
				changes["currency"] = currency.upper()
				if current.payment_details is None:
					changes["paymentDetails"] = {"totalCollected": 0, "participantCount": 0}
			else:
				if current.cost is not None:
					changes["cost"] = DELETE_FIELD
				if current.currency is not None:
					changes["currency"] = DELETE_FIELD
			txn.update(ACTIVITIES, activity_id, changes)
			return _load(txn, activity_id)

		try:
			activity = await self._store.run_transaction([DocRef(ACTIVITIES, activity_id)], _update)
		except PermissionDenied:
			audit.inc_write("update", "forbidden")
			raise
		audit.inc_write("update", "ok")
		await audit.log_activity_event("update", {"activity_id": activity_id, "user_id": actor.id})
		return activity

	async def delete(self, actor: Optional[AuthenticatedUser], activity_id: str) -> None:
		"""Owner-only hard delete; participation history goes with the document."""
		actor = require_actor(actor)

		def _delete(txn: Transaction) -> None:
			current = _load(txn, activity_id)
			if current.user_id != actor.id:
				raise PermissionDenied()
			txn.delete(ACTIVITIES, activity_id)

		try:
			await self._store.run_transaction([DocRef(ACTIVITIES, activity_id)], _delete)
		except PermissionDenied:
			audit.inc_write("delete", "forbidden")
			raise
		audit.inc_write("delete", "ok")
		await audit.log_activity_event("delete", {"activity_id": activity_id, "user_id": actor.id})

	async def join(
		self,
		actor: Optional[AuthenticatedUser],
		activity_id: str,
		*,
		connect_to_owner: bool = False,
	) -> JoinResult:
		"""Join a free activity, or report that checkout must happen first.

		The paid branch performs no write at all. Re-joining is a no-op that
		returns the existing entry with its original ``joinedAt``.
		"""
		actor = require_actor(actor)
		activity = await self._require(activity_id)
		if activity.is_paid and activity.user_id != actor.id and not is_joined(activity, actor.id):
			audit.inc_join("payment_required")
			return JoinResult(JoinOutcome.PAYMENT_REQUIRED, payment_required=_payment_required(activity, actor.id))

		connected = False
		if connect_to_owner and activity.user_id != actor.id:
			connected = await self.ensure_owner_connection(actor, activity.user_id)

		user = await users_service.get_user(actor.id, store=self._store)
		entry = {
			"email": actor.email,
			"username": (user.username if user else None) or actor.username,
			"joinedAt": now_iso(),
		}

		def _join(txn: Transaction) -> Tuple[JoinOutcome, Activity]:
			current = _load(txn, activity_id)
			if is_joined(current, actor.id):
				return JoinOutcome.ALREADY_JOINED, current
			if current.is_paid:
				# Switched to paid since the first read.
				return JoinOutcome.PAYMENT_REQUIRED, current
			txn.update(ACTIVITIES, activity_id, {field_path("joiners", actor.id): entry})
			return JoinOutcome.JOINED, _load(txn, activity_id)

		outcome, current = await self._store.run_transaction([DocRef(ACTIVITIES, activity_id)], _join)
		audit.inc_join(outcome.value)
		if outcome is JoinOutcome.PAYMENT_REQUIRED:
			return JoinResult(outcome, payment_required=_payment_required(current, actor.id), connected_to_owner=connected)
		if outcome is JoinOutcome.JOINED:
			await audit.log_activity_event("join", {"activity_id": activity_id, "user_id": actor.id})
		return JoinResult(outcome, joiner=current.joiners.get(actor.id), connected_to_owner=connected)

	async def leave(self, actor: Optional[AuthenticatedUser], activity_id: str) -> bool:
		"""Remove the caller's joiner key. Returns whether anything was removed.

		Owners stay implicitly joined, so an owner leave changes nothing.
		"""
		actor = require_actor(actor)

		def _leave(txn: Transaction) -> bool:
			current = _load(txn, activity_id)
			if current.user_id == actor.id or actor.id not in current.joiners:
				return False
			txn.update(ACTIVITIES, activity_id, {field_path("joiners", actor.id): DELETE_FIELD})
			return True

		removed = await self._store.run_transaction([DocRef(ACTIVITIES, activity_id)], _leave)
		audit.inc_leave("ok" if removed else "noop")
		if removed:
			await audit.log_activity_event("leave", {"activity_id": activity_id, "user_id": actor.id})
		return removed

	async def record_paid_join(
		self,
		activity_id: str,
		user_id: str,
		*,
		email: str,
		username: Optional[str],
		amount: int | float,
		payment_id: str,
		order_id: str,
		paid_at: str,
		order_ref: Optional[DocRef] = None,
	) -> bool:
		"""Write the completed joiner entry and bump the aggregates once per order.

		With ``order_ref`` the order document is the idempotency anchor: its
		``appliedAt`` is set in the same transaction as the joiner write, and an
		already-applied order is never applied again, even after the user left.
		Returns False when nothing was written.
		"""
		applied_at = now_iso()
		refs = [DocRef(ACTIVITIES, activity_id)] + ([order_ref] if order_ref is not None else [])

		def _mark_applied(txn: Transaction) -> None:
			if order_ref is not None:
				txn.update(order_ref.collection, order_ref.doc_id, {"appliedAt": applied_at})

		def _record(txn: Transaction) -> bool:
			if order_ref is not None:
				order = txn.get(order_ref.collection, order_ref.doc_id)
				if order is None:
					raise NotFound("order_missing")
				if order.get("appliedAt"):
					return False
			current = _load(txn, activity_id)
			existing = current.joiners.get(user_id)
			if existing is not None and existing.payment_status == PaymentStatus.COMPLETED.value:
				_mark_applied(txn)
				return False
			txn.update(
				ACTIVITIES,
				activity_id,
				{
					field_path("joiners", user_id): {
						"email": email,
						"username": username,
						"joinedAt": (existing.joined_at if existing else None) or paid_at,
						"paymentStatus": PaymentStatus.COMPLETED.value,
						"paymentId": payment_id,
						"paymentOrderId": order_id,
						"paidAmount": amount,
						"paidAt": paid_at,
					},
					"paymentDetails.participantCount": Increment(1),
					"paymentDetails.totalCollected": Increment(amount),
				},
			)
			_mark_applied(txn)
			return True

		recorded = await self._store.run_transaction(refs, _record)
		audit.inc_join("paid" if recorded else "already_joined")
		if recorded:
			await audit.log_activity_event(
				"paid_join",
				{"activity_id": activity_id, "user_id": user_id, "order_id": order_id, "amount": amount},
			)
		return recorded

	async def get(self, activity_id: str) -> Optional[Activity]:
		doc = await self._store.get(ACTIVITIES, activity_id)
		if doc is None:
			return None
		return Activity.from_document(activity_id, doc)

	async def _require(self, activity_id: str) -> Activity:
		activity = await self.get(activity_id)
		if activity is None:
			raise NotFound("activity_missing")
		return activity

	async def ensure_owner_connection(self, actor: AuthenticatedUser, owner_id: str) -> bool:
		"""Connect the actor with an activity owner unless already connected."""
		if await self._connections.are_connected(actor.id, owner_id):
			return False
		try:
			await self._connections.connect_to_user(actor, owner_id)
		except AlreadyConnected:
			return False
		return True
