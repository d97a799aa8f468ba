"""Audit helpers for payment orders."""

from __future__ import annotations

from typing import Dict

from floc.infra.redis import redis_client
from floc.obs import metrics as obs_metrics

STREAM = "x:payments.events"


async def log_payment_event(event: str, fields: Dict[str, str]) -> None:
	payload = {"event": event, **{key: str(value) for key, value in fields.items()}}
	await redis_client.xadd(STREAM, payload, maxlen=10_000, approximate=True)


def inc_order(status: str) -> None:
	obs_metrics.inc_payment_order(status)


def inc_verify_failure(reason: str) -> None:
	obs_metrics.inc_payment_verify_failure(reason)
