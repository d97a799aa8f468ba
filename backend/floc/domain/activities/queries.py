"""Read paths over activities. Multi-document reads end in the visibility filter."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from floc.domain.activities.models import ACTIVITIES, Activity, is_joined
from floc.domain.activities.visibility import filter_for_viewer
from floc.domain.exceptions import NotFound
from floc.domain.users import service as users_service
from floc.infra.auth import AuthenticatedUser, require_actor
from floc.infra.clock import parse_iso, utcnow
from floc.infra.documents import DocumentStore, documents
from floc.settings import settings


@dataclass(slots=True)
class FeedItem:
	activity: Activity
	allow_join: bool


@dataclass(slots=True)
class ActivityPage:
	items: List[FeedItem] = field(default_factory=list)
	next_cursor: Optional[str] = None


def encode_cursor(date_time: str, activity_id: str) -> str:
	raw = f"{date_time}|{activity_id}".encode("utf-8")
	return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> Tuple[str, str]:
	padded = cursor + "=" * (-len(cursor) % 4)
	try:
		raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
	except (binascii.Error, UnicodeError) as exc:
		raise ValueError("invalid cursor") from exc
	date_time, sep, activity_id = raw.rpartition("|")
	if not sep or not activity_id:
		raise ValueError("invalid cursor")
	return date_time, activity_id


def _chronological(activity: Activity) -> Tuple[str, str]:
	return (activity.date_time, activity.id)


def _is_past(activity: Activity, now: datetime) -> bool:
	try:
		return parse_iso(activity.date_time) < now
	except ValueError:
		return False


class ActivityQueries:
	def __init__(self, store: DocumentStore = documents) -> None:
		self._store = store

	async def _load(self, activity_ids: Iterable[str]) -> List[Activity]:
		ids = list(dict.fromkeys(activity_ids))
		docs = await self._store.get_many(ACTIVITIES, ids)
		return [Activity.from_document(activity_id, docs[activity_id]) for activity_id in ids if activity_id in docs]

	async def get_activity(self, actor: Optional[AuthenticatedUser], activity_id: str) -> Activity:
		"""Direct fetch by id. Private activities are reachable by link."""
		require_actor(actor)
		doc = await self._store.get(ACTIVITIES, activity_id)
		if doc is None:
			raise NotFound("activity_missing")
		return Activity.from_document(activity_id, doc)

	async def list_my_activities(self, actor: Optional[AuthenticatedUser]) -> List[Activity]:
		"""Activities the viewer created or joined, in date order."""
		actor = require_actor(actor)
		created = await self._store.where(ACTIVITIES, "userId", actor.id)
		joined = await self._store.with_map_key(ACTIVITIES, "joiners", [actor.id])
		activities = [
			activity
			for activity in await self._load([*created, *joined])
			if is_joined(activity, actor.id)
		]
		return sorted(filter_for_viewer(activities, actor.id), key=_chronological)

	async def list_profile_activities(
		self,
		actor: Optional[AuthenticatedUser],
		profile_user_id: str,
		*,
		now: Optional[datetime] = None,
	) -> List[Activity]:
		"""Past activities of a profile that the viewer may see, newest first."""
		actor = require_actor(actor)
		now = now or utcnow()
		created = await self._store.where(ACTIVITIES, "userId", profile_user_id)
		joined = await self._store.with_map_key(ACTIVITIES, "joiners", [profile_user_id])
		activities = [
			activity
			for activity in await self._load([*created, *joined])
			if is_joined(activity, profile_user_id) and _is_past(activity, now)
		]
		visible = filter_for_viewer(activities, actor.id)
		return sorted(visible, key=_chronological, reverse=True)

	async def list_connections_activities(
		self,
		actor: Optional[AuthenticatedUser],
		*,
		limit: Optional[int] = None,
		cursor: Optional[str] = None,
		include_joined: bool = False,
	) -> ActivityPage:
		"""Activities from the viewer's connections that the viewer has not joined.

		Rows created by a connection can be joined from the feed. With
		``include_joined`` rows a connection merely joined are added too, marked
		``allow_join=False``.
		"""
		actor = require_actor(actor)
		viewer = await users_service.require_user(actor.id, store=self._store)
		peer_ids = list(viewer.connections)
		if not peer_ids:
			return ActivityPage()

		page_size = max(1, min(limit or settings.feed_page_size, settings.feed_page_size_max))
		after = decode_cursor(cursor) if cursor else None

		created_ids = await self._store.where_in(ACTIVITIES, "userId", peer_ids)
		joined_ids = await self._store.with_map_key(ACTIVITIES, "joiners", peer_ids) if include_joined else []
		peers = set(peer_ids)
		rows: List[FeedItem] = []
		for activity in await self._load([*created_ids, *joined_ids]):
			if is_joined(activity, actor.id):
				continue
			if activity.user_id in peers:
				mirror = viewer.connections.get(activity.user_id) or {}
				activity.created_by = mirror.get("username") or mirror.get("email") or activity.created_by
				rows.append(FeedItem(activity, True))
			elif any(is_joined(activity, peer_id) for peer_id in peers):
				rows.append(FeedItem(activity, False))

		visible = {activity.id for activity in filter_for_viewer([row.activity for row in rows], actor.id)}
		rows = sorted((row for row in rows if row.activity.id in visible), key=lambda row: _chronological(row.activity))
		if after is not None:
			rows = [row for row in rows if _chronological(row.activity) > after]

		page = rows[:page_size]
		next_cursor = None
		if len(rows) > page_size:
			last = page[-1].activity
			next_cursor = encode_cursor(last.date_time, last.id)
		return ActivityPage(items=page, next_cursor=next_cursor)
