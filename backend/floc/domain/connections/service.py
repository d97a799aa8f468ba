"""Connection graph manager: symmetric edges between two user documents."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from floc.domain.connections import audit
from floc.domain.connections.models import EDGE_INTENTS, Edge, edge_payload, pair_id
from floc.domain.exceptions import AlreadyConnected, InconsistentEdge, NotFound, SelfConnection
from floc.domain.users import service as users_service
from floc.domain.users.models import USERS
from floc.infra.auth import AuthenticatedUser, require_actor
from floc.infra.clock import now_iso
from floc.infra.documents import DELETE_FIELD, DocRef, DocumentStore, Transaction, documents, field_path
from floc.settings import settings

logger = logging.getLogger(__name__)


def _connections(doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
	if not doc:
		return {}
	value = doc.get("connections")
	return value if isinstance(value, dict) else {}


def _mutual_sort_key(edge: Edge) -> tuple:
	group = 0 if edge.is_self else 1 if edge.is_mutual else 2
	return (group, edge.display_name.casefold(), edge.peer_id)


class ConnectionGraphManager:
	"""Creates, removes and lists symmetric connection edges.

	In ``transaction`` mode both sides of an edge are committed together. In
	``two_phase`` mode an ``edge_intents`` record is written before the two
	independent side writes and removed afterwards; a failure in between leaves
	the intent for :class:`ConnectionReconciler` to roll forward.
	"""

	def __init__(
		self,
		store: DocumentStore = documents,
		*,
		write_mode: Optional[str] = None,
		self_heal: Optional[bool] = None,
	) -> None:
		self._store = store
		self._write_mode = write_mode
		self._self_heal = self_heal

	@property
	def write_mode(self) -> str:
		return self._write_mode or settings.connection_write_mode

	@property
	def self_heal(self) -> bool:
		return settings.self_heal_edges if self._self_heal is None else self._self_heal

	# --- writes ------------------------------------------------------------

	async def connect(self, actor: Optional[AuthenticatedUser], target_email: str) -> str:
		"""Connect the actor with the user registered under ``target_email``.

		Returns the peer's user id, which identifies the edge from either side.
		"""
		actor = require_actor(actor)
		email = (target_email or "").strip()
		if email.lower() == (actor.email or "").strip().lower():
			raise SelfConnection()
		target = await users_service.find_by_email(email, store=self._store)
		if target is None:
			audit.inc_write("connect", "not_found")
			raise NotFound("user_missing")
		return await self.connect_to_user(actor, target.id)

	async def connect_to_user(self, actor: Optional[AuthenticatedUser], target_id: str) -> str:
		actor = require_actor(actor)
		target_id = str(target_id)
		if target_id == str(actor.id):
			raise SelfConnection()
		try:
			if self.write_mode == "two_phase":
				connected_at = await self._connect_two_phase(actor.id, target_id)
			else:
				connected_at = await self._connect_transaction(actor.id, target_id)
		except (AlreadyConnected, NotFound) as exc:
			audit.inc_write("connect", exc.reason)
			raise
		audit.inc_write("connect", "ok")
		await audit.log_connection_event(
			"connect",
			{"user_id": actor.id, "peer_id": target_id, "connected_at": connected_at, "mode": self.write_mode},
		)
		return target_id

	async def _connect_transaction(self, user_id: str, target_id: str) -> str:
		connected_at = now_iso()

		def _link(txn: Transaction) -> str:
			me = txn.get(USERS, user_id)
			peer = txn.get(USERS, target_id)
			if me is None or peer is None:
				raise NotFound("user_missing")
			if target_id in _connections(me):
				raise AlreadyConnected()
			txn.update(
				USERS,
				user_id,
				{field_path("connections", target_id): edge_payload(peer.get("email") or "", peer.get("username"), connected_at)},
			)
			txn.update(
				USERS,
				target_id,
				{field_path("connections", user_id): edge_payload(me.get("email") or "", me.get("username"), connected_at)},
			)
			return connected_at

		return await self._store.run_transaction([DocRef(USERS, user_id), DocRef(USERS, target_id)], _link)

	async def _connect_two_phase(self, user_id: str, target_id: str) -> str:
		me = await users_service.require_user(user_id, store=self._store)
		peer = await users_service.require_user(target_id, store=self._store)
		if target_id in me.connections:
			raise AlreadyConnected()
		connected_at = now_iso()
		sides = {
			user_id: {"peerId": target_id, "edge": edge_payload(peer.email, peer.username, connected_at)},
			target_id: {"peerId": user_id, "edge": edge_payload(me.email, me.username, connected_at)},
		}
		intent_id = pair_id(user_id, target_id)
		await self._store.set(
			EDGE_INTENTS,
			intent_id,
			{"op": "connect", "initiator": user_id, "sides": sides, "createdAt": now_iso()},
		)
		await self._store.update(USERS, user_id, {field_path("connections", target_id): sides[user_id]["edge"]})
		await self._store.update(USERS, target_id, {field_path("connections", user_id): sides[target_id]["edge"]})
		await self._store.delete(EDGE_INTENTS, intent_id)
		return connected_at

	async def disconnect(self, actor: Optional[AuthenticatedUser], target_id: str) -> None:
		"""Remove the edge from both sides; the peer's side goes first."""
		actor = require_actor(actor)
		target_id = str(target_id)
		me = await users_service.require_user(actor.id, store=self._store)
		if target_id not in me.connections:
			audit.inc_write("disconnect", "not_found")
			raise NotFound("connection_missing")
		if self.write_mode == "two_phase":
			await self._disconnect_two_phase(actor.id, target_id)
		else:
			await self._disconnect_transaction(actor.id, target_id)
		audit.inc_write("disconnect", "ok")
		await audit.log_connection_event(
			"disconnect",
			{"user_id": actor.id, "peer_id": target_id, "mode": self.write_mode},
		)

	async def _disconnect_transaction(self, user_id: str, target_id: str) -> None:
		def _unlink(txn: Transaction) -> None:
			me = txn.get(USERS, user_id)
			if me is None or target_id not in _connections(me):
				raise NotFound("connection_missing")
			if user_id in _connections(txn.get(USERS, target_id)):
				txn.update(USERS, target_id, {field_path("connections", user_id): DELETE_FIELD})
			txn.update(USERS, user_id, {field_path("connections", target_id): DELETE_FIELD})

		await self._store.run_transaction([DocRef(USERS, user_id), DocRef(USERS, target_id)], _unlink)

	async def _disconnect_two_phase(self, user_id: str, target_id: str) -> None:
		intent_id = pair_id(user_id, target_id)
		await self._store.set(
			EDGE_INTENTS,
			intent_id,
			{
				"op": "disconnect",
				"initiator": user_id,
				"sides": {user_id: {"peerId": target_id}, target_id: {"peerId": user_id}},
				"createdAt": now_iso(),
			},
		)
		if await self._store.exists(USERS, target_id):
			await self._store.update(USERS, target_id, {field_path("connections", user_id): DELETE_FIELD})
		await self._store.update(USERS, user_id, {field_path("connections", target_id): DELETE_FIELD})
		await self._store.delete(EDGE_INTENTS, intent_id)

	# --- reads -------------------------------------------------------------

	async def list_edges(self, user_id: str) -> List[Edge]:
		"""All edges of ``user_id`` ordered by connection time.

		One-sided edges are still returned, flagged ``consistent=False``.
		"""
		user = await users_service.require_user(user_id, store=self._store)
		peers = await self._store.get_many(USERS, user.connections.keys())
		edges: List[Edge] = []
		for peer_id, entry in user.connections.items():
			edge = Edge.from_entry(peer_id, entry)
			if user.id not in _connections(peers.get(peer_id)):
				edge.consistent = False
				await self._on_inconsistent(user.id, peer_id, source="read")
			edges.append(edge)
		edges.sort(key=lambda edge: (edge.connected_at or "", edge.peer_id))
		return edges

	async def list_edges_with_mutual_status(self, subject_id: str, viewer_id: str) -> List[Edge]:
		"""Edges of ``subject_id`` annotated relative to ``viewer_id``.

		Order: the viewer first, then mutual connections, then the rest, each
		group alphabetical by display name.
		"""
		edges = await self.list_edges(subject_id)
		viewer = await users_service.get_user(viewer_id, store=self._store)
		viewer_connections = viewer.connections if viewer else {}
		for edge in edges:
			edge.is_self = edge.peer_id == str(viewer_id)
			edge.is_mutual = edge.is_self or edge.peer_id in viewer_connections
		return sorted(edges, key=_mutual_sort_key)

	async def are_connected(self, user_id: str, peer_id: str) -> bool:
		user = await users_service.get_user(user_id, store=self._store)
		return bool(user and str(peer_id) in user.connections)

	# --- repair ------------------------------------------------------------

	async def _on_inconsistent(self, user_id: str, peer_id: str, *, source: str) -> bool:
		warning = InconsistentEdge(user_id, peer_id)
		healed = False
		if self.self_heal:
			healed = await self.heal_edge(user_id, peer_id)
		audit.inc_inconsistent(source, healed)
		logger.warning(str(warning), extra={"source": source, "healed": healed})
		return healed

	async def heal_edge(self, user_id: str, peer_id: str) -> bool:
		"""Re-write the missing mirror of ``user_id -> peer_id``.

		The mirror carries the same ``connectedAt``. Nothing is written when the
		edge was meanwhile removed, the mirror already exists, the peer document
		is missing, or a disconnect for this pair is still in flight.
		"""
		intent_ref = DocRef(EDGE_INTENTS, pair_id(user_id, peer_id))

		def _heal(txn: Transaction) -> bool:
			intent = txn.get(intent_ref.collection, intent_ref.doc_id)
			if intent and intent.get("op") == "disconnect":
				return False
			me = txn.get(USERS, user_id)
			peer = txn.get(USERS, peer_id)
			entry = _connections(me).get(peer_id)
			if me is None or peer is None or entry is None or user_id in _connections(peer):
				return False
			connected_at = entry.get("connectedAt") if isinstance(entry, dict) else None
			txn.update(
				USERS,
				peer_id,
				{field_path("connections", user_id): edge_payload(me.get("email") or "", me.get("username"), connected_at or now_iso())},
			)
			return True

		return await self._store.run_transaction(
			[DocRef(USERS, user_id), DocRef(USERS, peer_id), intent_ref],
			_heal,
		)
