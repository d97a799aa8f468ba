"""Options for the client-side checkout widget.

The service never opens the widget; it only hands the client what the widget
needs and later consumes the callback payload in ``PaymentGate.confirm``.
"""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field

from floc.domain.payments.models import PaymentOrder
from floc.settings import settings

THEME_COLOR = "#A06B89"


class CheckoutPrefill(BaseModel):
	name: str
	email: str


class CheckoutSession(BaseModel):
	key: str
	amount: int | float
	currency: str
	name: str
	description: str
	order_id: str
	prefill: CheckoutPrefill
	theme: Dict[str, str] = Field(default_factory=lambda: {"color": THEME_COLOR})
	method: Dict[str, bool] = Field(
		default_factory=lambda: {"upi": True, "card": True, "netbanking": True, "wallet": True}
	)


def build_checkout_session(order: PaymentOrder, activity_name: Optional[str] = None) -> CheckoutSession:
	name = activity_name or order.activity_name or "activity"
	return CheckoutSession(
		key=settings.payment_key_id,
		amount=order.amount,
		currency=order.currency,
		name=settings.checkout_brand_name,
		description=f"Payment for {name}",
		order_id=order.order_id,
		prefill=CheckoutPrefill(name=order.username or order.email or "User", email=order.email),
	)
