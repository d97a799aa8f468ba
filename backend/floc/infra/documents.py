"""Document store built on Redis hashes.

Each document ``{collection}/{id}`` lives in the hash ``doc:{collection}:{id}``.
Nested maps are flattened into dotted field paths (``joiners.u2.email``) and
every leaf is JSON-encoded, so a single map key can be written or removed
without touching its siblings. An empty map is kept as a ``{}`` leaf.

Writes always go through ``run_transaction``: the touched documents are
WATCHed, snapshotted, mutated locally and committed in one ``MULTI/EXEC``
together with their secondary index updates. A concurrent writer on any of
the watched documents forces a retry, which gives per-document atomic updates,
lost-update-free increments and atomic batches.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar
from uuid import uuid4

from redis.exceptions import WatchError

from floc.infra.redis import redis_client
from floc.obs import metrics as obs_metrics
from floc.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_REV_FIELD = "__rev"

# Field indexes keep `idx:{collection}:{field}:{value}` sets, map-key indexes
# keep `idx:{collection}:{field}.*:{key}` sets of documents holding that key.
FIELD_INDEXES: Dict[str, Tuple[str, ...]] = {
	"users": ("email",),
	"activities": ("userId",),
	"payment_orders": ("status", "userId", "activityId"),
}
MAP_KEY_INDEXES: Dict[str, Tuple[str, ...]] = {
	"activities": ("joiners",),
}
# Indexed fields matched case-insensitively; every other index is exact.
CASEFOLD_FIELDS: Set[Tuple[str, str]] = {("users", "email")}


class StoreContention(Exception):
	"""Raised when a transaction keeps losing its WATCH race."""

	reason = "contention"


class DocumentMissing(KeyError):
	"""Raised when an update targets a document that does not exist."""


class _DeleteField:
	def __repr__(self) -> str:
		return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


@dataclass(frozen=True, slots=True)
class Increment:
	amount: int | float = 1


@dataclass(frozen=True, slots=True)
class DocRef:
	collection: str
	doc_id: str

	@property
	def key(self) -> str:
		return f"doc:{self.collection}:{self.doc_id}"


def new_id() -> str:
	return str(uuid4())


def _check_segment(segment: str) -> str:
	segment = str(segment)
	if not segment or "." in segment or segment.startswith("__"):
		raise ValueError(f"invalid document path segment: {segment!r}")
	return segment


def _check_path(path: str) -> str:
	for segment in path.split("."):
		_check_segment(segment)
	return path


def is_valid_key(value: Any) -> bool:
	"""Whether ``value`` can be used as a single map key or document id."""
	value = str(value or "")
	return bool(value) and "." not in value and not value.startswith("__")


def field_path(*segments: Any) -> str:
	"""Dotted field path built from raw map keys such as user ids.

	A key that would split into more than one segment raises ``ValueError``
	instead of silently addressing a nested field.
	"""
	return ".".join(_check_segment(str(segment)) for segment in segments)


def _encode(value: Any) -> str:
	return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _decode(raw: str) -> Any:
	return json.loads(raw)


def flatten(path: str, value: Any) -> Dict[str, str]:
	if isinstance(value, Mapping):
		if not value:
			return {path: "{}"}
		out: Dict[str, str] = {}
		for key, nested in value.items():
			_check_segment(key)
			out.update(flatten(f"{path}.{key}" if path else str(key), nested))
		return out
	return {path: _encode(value)}


def unflatten(fields: Mapping[str, str]) -> Dict[str, Any]:
	doc: Dict[str, Any] = {}
	for path in sorted(fields, key=lambda p: p.count(".")):
		if path.startswith("__"):
			continue
		parts = path.split(".")
		node = doc
		for part in parts[:-1]:
			child = node.get(part)
			if not isinstance(child, dict):
				child = {}
				node[part] = child
			node = child
		value = _decode(fields[path])
		leaf = parts[-1]
		if value == {} and isinstance(node.get(leaf), dict):
			continue
		node[leaf] = value
	return doc


def _has_data(fields: Mapping[str, str]) -> bool:
	return any(not path.startswith("__") for path in fields)


def _remove_subtree(fields: Dict[str, str], path: str) -> bool:
	prefix = path + "."
	doomed = [key for key in fields if key == path or key.startswith(prefix)]
	for key in doomed:
		del fields[key]
	return bool(doomed)


def _clear_ancestors(fields: Dict[str, str], path: str) -> None:
	parts = path.split(".")
	for idx in range(1, len(parts)):
		fields.pop(".".join(parts[:idx]), None)


def _apply_changes(fields: Dict[str, str], changes: Mapping[str, Any]) -> None:
	for path, value in changes.items():
		_check_path(path)
		if value is DELETE_FIELD:
			if _remove_subtree(fields, path):
				parent = path.rpartition(".")[0]
				if parent and not any(key.startswith(parent + ".") for key in fields):
					fields[parent] = "{}"
			continue
		if isinstance(value, Increment):
			current = fields.get(path)
			base = _decode(current) if current is not None else 0
			if isinstance(base, bool) or not isinstance(base, (int, float)):
				raise TypeError(f"cannot increment non-numeric field {path!r}")
			_clear_ancestors(fields, path)
			fields[path] = _encode(base + value.amount)
			continue
		_remove_subtree(fields, path)
		_clear_ancestors(fields, path)
		fields.update(flatten(path, value))


def _index_value(value: Any, *, casefold: bool = False) -> str:
	if isinstance(value, str):
		value = value.strip()
		return value.lower() if casefold else value
	return _encode(value)


class DocumentStore:
	"""Get/set/update/batch primitives over Redis with optional transactions."""

	def __init__(
		self,
		*,
		field_indexes: Optional[Mapping[str, Tuple[str, ...]]] = None,
		map_key_indexes: Optional[Mapping[str, Tuple[str, ...]]] = None,
		max_retries: Optional[int] = None,
	) -> None:
		self._field_indexes = dict(FIELD_INDEXES if field_indexes is None else field_indexes)
		self._map_key_indexes = dict(MAP_KEY_INDEXES if map_key_indexes is None else map_key_indexes)
		self._max_retries = max_retries

	# --- index helpers -----------------------------------------------------

	def _all_key(self, collection: str) -> str:
		return f"idx:{collection}:__all__"

	def _field_key(self, collection: str, field: str, value: Any) -> str:
		casefold = (collection, field) in CASEFOLD_FIELDS
		return f"idx:{collection}:{field}:{_index_value(value, casefold=casefold)}"

	def _map_key(self, collection: str, field: str, key: str) -> str:
		return f"idx:{collection}:{field}.*:{key}"

	def _index_entries(self, collection: str, fields: Mapping[str, str]) -> Set[str]:
		if not _has_data(fields):
			return set()
		entries = {self._all_key(collection)}
		for field in self._field_indexes.get(collection, ()):
			raw = fields.get(field)
			if raw is None:
				continue
			value = _decode(raw)
			if value is None or isinstance(value, (dict, list)):
				continue
			entries.add(self._field_key(collection, field, value))
		for field in self._map_key_indexes.get(collection, ()):
			prefix = field + "."
			for path in fields:
				if path.startswith(prefix):
					entries.add(self._map_key(collection, field, path[len(prefix):].split(".", 1)[0]))
		return entries

	# --- transactions ------------------------------------------------------

	async def run_transaction(self, refs: Sequence[DocRef], fn: Callable[["Transaction"], T]) -> T:
		"""Run ``fn`` against consistent snapshots of ``refs`` and commit atomically.

		``fn`` must not perform I/O; it reads through the transaction and queues
		writes on it. It may be called more than once when another writer touches
		one of the documents before commit.
		"""
		ordered = list(dict.fromkeys(refs))
		keys = [ref.key for ref in ordered]
		attempts = self._max_retries or settings.store_max_retries
		for attempt in range(attempts):
			async with redis_client.pipeline(transaction=True) as pipe:
				try:
					await pipe.watch(*keys)
					snapshots: Dict[DocRef, Dict[str, str]] = {}
					for ref in ordered:
						snapshots[ref] = dict(await pipe.hgetall(ref.key))
					txn = Transaction(snapshots)
					result = fn(txn)
					if not txn.dirty:
						await pipe.unwatch()
						return result
					pipe.multi()
					self._queue_writes(pipe, txn)
					await pipe.execute()
					return result
				except WatchError:
					obs_metrics.inc_store_retry(ordered[0].collection if ordered else "none")
					logger.debug("document transaction retry", extra={"attempt": attempt + 1, "keys": keys})
					continue
		raise StoreContention(",".join(keys))

	def _queue_writes(self, pipe, txn: "Transaction") -> None:
		for ref in txn.dirty:
			before = txn.before(ref)
			after = txn.after(ref)
			if not _has_data(after):
				pipe.delete(ref.key)
			else:
				removed = [key for key in before if key not in after and key != _REV_FIELD]
				changed = {key: value for key, value in after.items() if before.get(key) != value}
				changed[_REV_FIELD] = str(int(before.get(_REV_FIELD, "0")) + 1)
				if removed:
					pipe.hdel(ref.key, *removed)
				pipe.hset(ref.key, mapping=changed)
			old_entries = self._index_entries(ref.collection, before)
			new_entries = self._index_entries(ref.collection, after)
			for index_key in old_entries - new_entries:
				pipe.srem(index_key, ref.doc_id)
			for index_key in new_entries - old_entries:
				pipe.sadd(index_key, ref.doc_id)

	# --- single document primitives ----------------------------------------

	async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
		fields = await redis_client.hgetall(DocRef(collection, doc_id).key)
		if not fields or not _has_data(fields):
			return None
		return unflatten(fields)

	async def get_many(self, collection: str, doc_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
		ids = list(dict.fromkeys(str(doc_id) for doc_id in doc_ids))
		if not ids:
			return {}
		async with redis_client.pipeline(transaction=False) as pipe:
			for doc_id in ids:
				pipe.hgetall(DocRef(collection, doc_id).key)
			rows = await pipe.execute()
		return {doc_id: unflatten(fields) for doc_id, fields in zip(ids, rows) if fields and _has_data(fields)}

	async def exists(self, collection: str, doc_id: str) -> bool:
		return bool(await redis_client.exists(DocRef(collection, doc_id).key))

	async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
		await self.run_transaction([DocRef(collection, doc_id)], lambda txn: txn.set(collection, doc_id, data))

	async def create(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str:
		doc_id = _check_segment(doc_id or new_id())
		await self.set(collection, doc_id, data)
		return doc_id

	async def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
		"""Apply dotted-path changes; raises DocumentMissing when absent."""
		await self.run_transaction(
			[DocRef(collection, doc_id)],
			lambda txn: txn.update(collection, doc_id, changes),
		)

	async def delete(self, collection: str, doc_id: str) -> bool:
		def _delete(txn: Transaction) -> bool:
			if not txn.exists(collection, doc_id):
				return False
			txn.delete(collection, doc_id)
			return True

		return await self.run_transaction([DocRef(collection, doc_id)], _delete)

	def batch(self) -> "WriteBatch":
		return WriteBatch(self)

	# --- queries -----------------------------------------------------------

	async def where(self, collection: str, field: str, value: Any) -> List[str]:
		self._require_field_index(collection, field)
		members = await redis_client.smembers(self._field_key(collection, field, value))
		return sorted(members)

	async def where_in(self, collection: str, field: str, values: Iterable[Any]) -> List[str]:
		self._require_field_index(collection, field)
		keys = [self._field_key(collection, field, value) for value in values]
		if not keys:
			return []
		return sorted(await redis_client.sunion(keys))

	async def with_map_key(self, collection: str, field: str, keys: Iterable[str]) -> List[str]:
		if field not in self._map_key_indexes.get(collection, ()):
			raise ValueError(f"no map-key index on {collection}.{field}")
		index_keys = [self._map_key(collection, field, str(key)) for key in keys]
		if not index_keys:
			return []
		return sorted(await redis_client.sunion(index_keys))

	async def list_ids(self, collection: str) -> List[str]:
		return sorted(await redis_client.smembers(self._all_key(collection)))

	def _require_field_index(self, collection: str, field: str) -> None:
		if field not in self._field_indexes.get(collection, ()):
			raise ValueError(f"no field index on {collection}.{field}")


class Transaction:
	"""Snapshot view of watched documents plus the writes queued against them."""

	def __init__(self, snapshots: Mapping[DocRef, Dict[str, str]]) -> None:
		self._before = {ref: dict(fields) for ref, fields in snapshots.items()}
		self._after = {ref: dict(fields) for ref, fields in snapshots.items()}
		self._dirty: List[DocRef] = []

	@property
	def dirty(self) -> List[DocRef]:
		return list(self._dirty)

	def before(self, ref: DocRef) -> Dict[str, str]:
		return self._before[ref]

	def after(self, ref: DocRef) -> Dict[str, str]:
		return self._after[ref]

	def _ref(self, collection: str, doc_id: str) -> DocRef:
		ref = DocRef(collection, str(doc_id))
		if ref not in self._after:
			raise ValueError(f"{collection}/{doc_id} is not part of this transaction")
		return ref

	def _touch(self, ref: DocRef) -> None:
		if ref not in self._dirty:
			self._dirty.append(ref)

	def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
		fields = self._after[self._ref(collection, doc_id)]
		if not _has_data(fields):
			return None
		return unflatten(fields)

	def exists(self, collection: str, doc_id: str) -> bool:
		return _has_data(self._after[self._ref(collection, doc_id)])

	def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
		ref = self._ref(collection, doc_id)
		fields: Dict[str, str] = {}
		for key, value in data.items():
			fields.update(flatten(_check_segment(key), value))
		rev = self._after[ref].get(_REV_FIELD)
		if rev is not None:
			fields[_REV_FIELD] = rev
		self._after[ref] = fields
		self._touch(ref)

	def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
		ref = self._ref(collection, doc_id)
		fields = self._after[ref]
		if not _has_data(fields):
			raise DocumentMissing(f"{collection}/{doc_id}")
		_apply_changes(fields, changes)
		self._touch(ref)

	def delete(self, collection: str, doc_id: str) -> None:
		ref = self._ref(collection, doc_id)
		self._after[ref] = {}
		self._touch(ref)


class WriteBatch:
	"""Blind writes across documents, committed atomically as one batch."""

	def __init__(self, store: DocumentStore) -> None:
		self._store = store
		self._ops: List[Tuple[str, DocRef, Any]] = []

	def __len__(self) -> int:
		return len(self._ops)

	def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> "WriteBatch":
		self._ops.append(("set", DocRef(collection, str(doc_id)), data))
		return self

	def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> "WriteBatch":
		self._ops.append(("update", DocRef(collection, str(doc_id)), changes))
		return self

	def delete(self, collection: str, doc_id: str) -> "WriteBatch":
		self._ops.append(("delete", DocRef(collection, str(doc_id)), None))
		return self

	async def commit(self) -> None:
		if not self._ops:
			return
		ops = list(self._ops)

		def _apply(txn: Transaction) -> None:
			for kind, ref, payload in ops:
				if kind == "set":
					txn.set(ref.collection, ref.doc_id, payload)
				elif kind == "update":
					txn.update(ref.collection, ref.doc_id, payload)
				else:
					txn.delete(ref.collection, ref.doc_id)

		await self._store.run_transaction([ref for _, ref, _ in ops], _apply)


documents = DocumentStore()
