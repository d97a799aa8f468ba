"""UTC timestamps in the single sortable representation used by every document."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
	"""ISO-8601, UTC, millisecond precision; lexical order equals time order."""
	if value.tzinfo is None:
		value = value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def now_iso() -> str:
	return to_iso(utcnow())


def parse_iso(value: str) -> datetime:
	parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed
