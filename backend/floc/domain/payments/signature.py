"""Checkout callback signatures: HMAC-SHA256 over ``{order_id}|{payment_id}``."""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from floc.settings import settings


def sign(order_id: str, payment_id: str, secret: Optional[str] = None) -> str:
	key = settings.payment_key_secret if secret is None else secret
	return hmac.new(key.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def verify(order_id: str, payment_id: str, signature: str, secret: Optional[str] = None) -> bool:
	if not signature:
		return False
	return hmac.compare_digest(sign(order_id, payment_id, secret), signature.strip().lower())
