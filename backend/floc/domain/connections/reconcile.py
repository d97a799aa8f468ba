"""Reconciliation sweep for the connection graph.

Rolls forward edge intents left behind by interrupted two-phase writes, then
walks every user document and heals edges that exist on one side only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from floc.domain.connections import audit
from floc.domain.connections.models import EDGE_INTENTS
from floc.domain.connections.service import ConnectionGraphManager
from floc.domain.users.models import USERS
from floc.infra.documents import DELETE_FIELD, DocRef, DocumentStore, Transaction, documents, field_path

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
	intents_replayed: int = 0
	users_scanned: int = 0
	edges_healed: int = 0
	dangling_removed: int = 0


class ConnectionReconciler:
	def __init__(
		self,
		store: DocumentStore = documents,
		manager: Optional[ConnectionGraphManager] = None,
	) -> None:
		self._store = store
		self._manager = manager or ConnectionGraphManager(store, self_heal=True)

	async def sweep(self) -> SweepReport:
		report = SweepReport()
		for intent_id in await self._store.list_ids(EDGE_INTENTS):
			if await self.replay_intent(intent_id):
				report.intents_replayed += 1

		for user_id in await self._store.list_ids(USERS):
			user = await self._store.get(USERS, user_id)
			if user is None:
				continue
			report.users_scanned += 1
			connections = user.get("connections") or {}
			if not connections:
				continue
			peers = await self._store.get_many(USERS, connections.keys())
			for peer_id in list(connections):
				peer = peers.get(peer_id)
				if peer is None:
					await self._store.update(USERS, user_id, {field_path("connections", peer_id): DELETE_FIELD})
					report.dangling_removed += 1
					continue
				if user_id in (peer.get("connections") or {}):
					continue
				healed = await self._manager.heal_edge(user_id, peer_id)
				audit.inc_inconsistent("sweep", healed)
				if healed:
					report.edges_healed += 1

		logger.info(
			"connection_sweep_complete",
			extra={
				"intents_replayed": report.intents_replayed,
				"users_scanned": report.users_scanned,
				"edges_healed": report.edges_healed,
				"dangling_removed": report.dangling_removed,
			},
		)
		return report

	async def replay_intent(self, intent_id: str) -> bool:
		"""Apply both sides of a pending intent and drop it; idempotent."""
		intent = await self._store.get(EDGE_INTENTS, intent_id)
		if intent is None:
			return False
		sides: Dict[str, Dict[str, Any]] = intent.get("sides") or {}
		op = intent.get("op")
		refs = [DocRef(EDGE_INTENTS, intent_id)] + [DocRef(USERS, user_id) for user_id in sides]

		def _apply(txn: Transaction) -> bool:
			if not txn.exists(EDGE_INTENTS, intent_id):
				return False
			for user_id, side in sides.items():
				if not txn.exists(USERS, user_id):
					continue
				path = field_path("connections", side["peerId"])
				if op == "connect":
					txn.update(USERS, user_id, {path: side["edge"]})
				elif op == "disconnect":
					txn.update(USERS, user_id, {path: DELETE_FIELD})
			txn.delete(EDGE_INTENTS, intent_id)
			return True

		replayed = await self._store.run_transaction(refs, _apply)
		if replayed:
			logger.warning("edge_intent_replayed", extra={"intent": intent_id, "op": op})
			await audit.log_connection_event(f"{op}_replayed", {"intent": intent_id})
		return replayed
