"""User document service: sign-in sync, lookups and username propagation."""

from __future__ import annotations

import logging
from typing import Optional

from floc.domain.exceptions import NotFound
from floc.domain.users.models import USERS, UserRecord, default_username
from floc.infra.auth import AuthenticatedUser, require_actor
from floc.infra.clock import now_iso
from floc.infra.documents import DocRef, DocumentStore, Transaction, documents, field_path

logger = logging.getLogger(__name__)


async def get_user(user_id: str, *, store: DocumentStore = documents) -> Optional[UserRecord]:
	doc = await store.get(USERS, user_id)
	if doc is None:
		return None
	return UserRecord.from_document(user_id, doc)


async def require_user(user_id: str, *, store: DocumentStore = documents) -> UserRecord:
	user = await get_user(user_id, store=store)
	if user is None:
		raise NotFound("user_missing")
	return user


async def find_by_email(email: str, *, store: DocumentStore = documents) -> Optional[UserRecord]:
	email = (email or "").strip()
	if not email:
		return None
	for user_id in await store.where(USERS, "email", email):
		user = await get_user(user_id, store=store)
		if user is not None and user.email.strip().lower() == email.lower():
			return user
	return None


async def ensure_user(actor: Optional[AuthenticatedUser], *, store: DocumentStore = documents) -> UserRecord:
	"""Create the user document on first sign-in, otherwise refresh lastLogin."""
	actor = require_actor(actor)
	now = now_iso()

	def _sync(txn: Transaction) -> bool:
		if txn.exists(USERS, actor.id):
			txn.update(USERS, actor.id, {"lastLogin": now})
			return False
		txn.set(
			USERS,
			actor.id,
			{
				"email": actor.email,
				"username": actor.username or default_username(actor.email),
				"createdAt": now,
				"lastLogin": now,
				"connections": {},
			},
		)
		return True

	created = await store.run_transaction([DocRef(USERS, actor.id)], _sync)
	if created:
		logger.info("user_created", extra={"user": actor.id})
	return await require_user(actor.id, store=store)


async def update_username(
	actor: Optional[AuthenticatedUser],
	username: str,
	*,
	store: DocumentStore = documents,
) -> UserRecord:
	"""Rename the user and every mirrored copy held by their connections."""
	actor = require_actor(actor)
	new_name = (username or "").strip()
	if not new_name:
		raise ValueError("username must not be blank")

	user = await require_user(actor.id, store=store)
	refs = [DocRef(USERS, actor.id)] + [DocRef(USERS, peer_id) for peer_id in user.connections]

	def _rename(txn: Transaction) -> int:
		if not txn.exists(USERS, actor.id):
			raise NotFound("user_missing")
		txn.update(USERS, actor.id, {"username": new_name})
		mirrored = 0
		for peer_id in user.connections:
			peer = txn.get(USERS, peer_id)
			# Only rewrite an existing mirror; never fabricate half an edge.
			if peer and actor.id in (peer.get("connections") or {}):
				txn.update(USERS, peer_id, {field_path("connections", actor.id, "username"): new_name})
				mirrored += 1
		return mirrored

	mirrored = await store.run_transaction(refs, _rename)
	logger.info("username_updated", extra={"user": actor.id, "mirrors": mirrored})
	return await require_user(actor.id, store=store)
