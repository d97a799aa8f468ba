"""Audit helpers for connection edges."""

from __future__ import annotations

from typing import Dict

from floc.infra.redis import redis_client
from floc.obs import metrics as obs_metrics

STREAM = "x:connections.events"


async def log_connection_event(event: str, fields: Dict[str, str]) -> None:
	payload = {"event": event, **{key: str(value) for key, value in fields.items()}}
	await redis_client.xadd(STREAM, payload, maxlen=10_000, approximate=True)


def inc_write(op: str, result: str) -> None:
	obs_metrics.inc_connection_write(op, result)


def inc_inconsistent(source: str, healed: bool) -> None:
	obs_metrics.inc_inconsistent_edge(source, healed)
