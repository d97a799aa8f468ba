"""Payment order documents, the idempotency anchor of a checkout attempt."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

PAYMENT_ORDERS = "payment_orders"


class OrderStatus(str, Enum):
	CREATED = "created"
	COMPLETED = "completed"
	CANCELLED = "cancelled"
	EXPIRED = "expired"


def new_order_id() -> str:
	return f"order_{uuid4().hex}"


@dataclass(slots=True)
class PaymentOrder:
	order_id: str
	amount: int | float
	currency: str
	activity_id: str
	user_id: str
	status: OrderStatus
	activity_name: str = ""
	email: str = ""
	username: Optional[str] = None
	connect_to_owner: bool = False
	payment_id: Optional[str] = None
	signature: Optional[str] = None
	created_at: Optional[str] = None
	completed_at: Optional[str] = None
	cancelled_at: Optional[str] = None
	expired_at: Optional[str] = None
	# Set once the joiner entry this order pays for has been written.
	applied_at: Optional[str] = None

	@property
	def is_completed(self) -> bool:
		return self.status is OrderStatus.COMPLETED

	@classmethod
	def from_document(cls, order_id: str, doc: Dict[str, Any]) -> "PaymentOrder":
		try:
			status = OrderStatus(doc.get("status") or OrderStatus.CREATED.value)
		except ValueError:
			status = OrderStatus.CREATED
		return cls(
			order_id=order_id,
			amount=doc.get("amount") or 0,
			currency=doc.get("currency") or "",
			activity_id=doc.get("activityId") or "",
			user_id=doc.get("userId") or "",
			status=status,
			activity_name=doc.get("activityName") or "",
			email=doc.get("email") or "",
			username=doc.get("username"),
			connect_to_owner=bool(doc.get("connectToOwner")),
			payment_id=doc.get("paymentId"),
			signature=doc.get("signature"),
			created_at=doc.get("createdAt"),
			completed_at=doc.get("completedAt"),
			cancelled_at=doc.get("cancelledAt"),
			expired_at=doc.get("expiredAt"),
			applied_at=doc.get("appliedAt"),
		)

	def to_document(self) -> Dict[str, Any]:
		doc: Dict[str, Any] = {
			"orderId": self.order_id,
			"amount": self.amount,
			"currency": self.currency,
			"activityId": self.activity_id,
			"activityName": self.activity_name,
			"userId": self.user_id,
			"email": self.email,
			"username": self.username,
			"connectToOwner": self.connect_to_owner,
			"status": self.status.value,
			"createdAt": self.created_at,
		}
		for key, value in (
			("paymentId", self.payment_id),
			("signature", self.signature),
			("completedAt", self.completed_at),
			("cancelledAt", self.cancelled_at),
			("expiredAt", self.expired_at),
			("appliedAt", self.applied_at),
		):
			if value is not None:
				doc[key] = value
		return doc
