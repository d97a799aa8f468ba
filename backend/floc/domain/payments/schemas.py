"""Request and response schemas for the payment routes."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from floc.domain.payments.models import PaymentOrder
from floc.domain.payments.processor import CheckoutSession


class BeginPaymentRequest(BaseModel):
	activity_id: str = Field(..., min_length=1)
	connect_to_owner: bool = False


class ConfirmPaymentRequest(BaseModel):
	"""Callback payload; the processor's own field names are accepted as well."""

	model_config = ConfigDict(populate_by_name=True)

	payment_id: str = Field(..., min_length=1, validation_alias=AliasChoices("payment_id", "razorpay_payment_id"))
	signature: str = Field(..., min_length=1, validation_alias=AliasChoices("signature", "razorpay_signature"))
	activity_id: Optional[str] = None


class PaymentOrderView(BaseModel):
	order_id: str
	amount: float
	currency: str
	activity_id: str
	status: str
	payment_id: Optional[str] = None
	created_at: Optional[str] = None
	completed_at: Optional[str] = None
	cancelled_at: Optional[str] = None

	@classmethod
	def from_order(cls, order: PaymentOrder) -> "PaymentOrderView":
		return cls(
			order_id=order.order_id,
			amount=order.amount,
			currency=order.currency,
			activity_id=order.activity_id,
			status=order.status.value,
			payment_id=order.payment_id,
			created_at=order.created_at,
			completed_at=order.completed_at,
			cancelled_at=order.cancelled_at,
		)


class BeginPaymentResponse(BaseModel):
	order: PaymentOrderView
	checkout: CheckoutSession


class ConfirmPaymentResponse(BaseModel):
	order: PaymentOrderView
	joined: bool
	recorded: bool
	connected_to_owner: bool = False
