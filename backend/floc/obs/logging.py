"""JSON log lines with request context and redaction of payment and contact data."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from floc.settings import settings

_ROOT_LOGGER = "floc"

# Fields bound for the lifetime of one request (request_id, route, user_id).
_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("floc_log_context", default={})

# Substrings of extra-field names whose values never reach a log line.
_REDACT = ("secret", "signature", "token", "authorization", "password", "key_id")
_MASK = ("email",)

_STRING_LIMIT = 200
_ITEM_LIMIT = 12

# Everything LogRecord sets on itself; only caller-supplied extras are emitted.
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Merge ``fields`` into the log context; pass the token to :func:`reset_context`."""
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def mask_email(value: str) -> str:
	local, sep, domain = value.partition("@")
	if not sep:
		return "[masked]"
	return f"{local[:1]}***@{domain}"


def _scrub(key: str, value: Any) -> Any:
	name = key.lower()
	if any(marker in name for marker in _REDACT):
		return "[redacted]"
	if any(marker in name for marker in _MASK) and isinstance(value, str):
		return mask_email(value)
	if isinstance(value, str) and len(value) > _STRING_LIMIT:
		return value[:_STRING_LIMIT] + "..."
	if isinstance(value, Mapping):
		items = list(value.items())
		scrubbed = {str(k): _scrub(str(k), v) for k, v in items[:_ITEM_LIMIT]}
		if len(items) > _ITEM_LIMIT:
			scrubbed["_truncated"] = len(items) - _ITEM_LIMIT
		return scrubbed
	if isinstance(value, (list, tuple, set)):
		values = [_scrub(key, v) for v in list(value)[:_ITEM_LIMIT]]
		if len(value) > _ITEM_LIMIT:
			values.append(f"+{len(value) - _ITEM_LIMIT} more")
		return values
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		line: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		line.update(_CONTEXT.get())
		for key, value in vars(record).items():
			if key not in _RECORD_FIELDS:
				line[key] = _scrub(key, value)
		if record.exc_info:
			line["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(line, default=str, separators=(",", ":"))


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of INFO lines; other levels always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = settings.obs_log_sampling_rate_info
		return rate >= 1.0 or random.random() < max(rate, 0.0)


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _ROOT_LOGGER)
