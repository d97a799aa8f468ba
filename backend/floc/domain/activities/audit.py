"""Audit helpers for activity participation."""

from __future__ import annotations

from typing import Dict

from floc.infra.redis import redis_client
from floc.obs import metrics as obs_metrics

STREAM = "x:activities.events"


async def log_activity_event(event: str, fields: Dict[str, str]) -> None:
    payload = {"event": event, **{key: str(value) for key, value in fields.items()}}
    await redis_client.xadd(STREAM, payload, maxlen=10_000, approximate=True)


def inc_join(result: str) -> None:
    obs_metrics.inc_join(result)


def inc_leave(result: str) -> None:
    obs_metrics.inc_leave(result)


def inc_write(op: str, result: str) -> None:
    obs_metrics.inc_activity_write(op, result)
