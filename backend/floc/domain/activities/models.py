"""Domain models for activities and their embedded joiner map."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from floc.domain.exceptions import PAYMENT_REQUIRED_MESSAGE

ACTIVITIES = "activities"


class PaymentStatus(str, Enum):
	PENDING = "pending"
	COMPLETED = "completed"
	FAILED = "failed"


class JoinOutcome(str, Enum):
	JOINED = "joined"
	ALREADY_JOINED = "already_joined"
	PAYMENT_REQUIRED = "payment_required"


@dataclass(slots=True)
class Joiner:
	user_id: str
	email: str
	username: Optional[str]
	joined_at: Optional[str]
	payment_status: Optional[str] = None
	payment_id: Optional[str] = None
	payment_order_id: Optional[str] = None
	paid_amount: Optional[int | float] = None
	paid_at: Optional[str] = None

	@classmethod
	def from_entry(cls, user_id: str, entry: Dict[str, Any]) -> "Joiner":
		entry = entry if isinstance(entry, dict) else {}
		return cls(
			user_id=user_id,
			email=entry.get("email") or "",
			username=entry.get("username"),
			joined_at=entry.get("joinedAt"),
			payment_status=entry.get("paymentStatus"),
			payment_id=entry.get("paymentId"),
			payment_order_id=entry.get("paymentOrderId"),
			paid_amount=entry.get("paidAmount"),
			paid_at=entry.get("paidAt"),
		)


@dataclass(slots=True)
class PaymentDetails:
	total_collected: int | float = 0
	participant_count: int = 0

	@classmethod
	def from_entry(cls, entry: Any) -> Optional["PaymentDetails"]:
		if not isinstance(entry, dict):
			return None
		return cls(
			total_collected=entry.get("totalCollected") or 0,
			participant_count=int(entry.get("participantCount") or 0),
		)


@dataclass(slots=True)
class Activity:
	id: str
	name: str
	location: str
	date_time: str
	description: str
	user_id: str
	created_by: str
	is_private: bool = False
	is_paid: bool = False
	cost: Optional[int | float] = None
	currency: Optional[str] = None
	payment_details: Optional[PaymentDetails] = None
	joiners: Dict[str, Joiner] = field(default_factory=dict)
	created_at: Optional[str] = None

	@classmethod
	def from_document(cls, activity_id: str, doc: Dict[str, Any]) -> "Activity":
		joiners = doc.get("joiners") or {}
		return cls(
			id=activity_id,
			name=doc.get("name") or "",
			location=doc.get("location") or "",
			date_time=doc.get("dateTime") or "",
			description=doc.get("description") or "",
			user_id=doc.get("userId") or "",
			created_by=doc.get("createdBy") or "Anonymous",
			is_private=bool(doc.get("isPrivate")),
			is_paid=bool(doc.get("isPaid")),
			cost=doc.get("cost"),
			currency=doc.get("currency"),
			payment_details=PaymentDetails.from_entry(doc.get("paymentDetails")),
			joiners={uid: Joiner.from_entry(uid, entry) for uid, entry in joiners.items()} if isinstance(joiners, dict) else {},
			created_at=doc.get("createdAt"),
		)


def is_joined(activity: Activity, user_id: Optional[str]) -> bool:
	"""Whether ``user_id`` currently counts as a participant; no I/O.

	The owner always counts. On paid activities a non-owner entry only counts
	once its payment has completed.
	"""
	if not user_id:
		return False
	if str(user_id) == activity.user_id:
		return True
	joiner = activity.joiners.get(str(user_id))
	if joiner is None:
		return False
	if activity.is_paid:
		return joiner.payment_status == PaymentStatus.COMPLETED.value
	return True


@dataclass(slots=True, frozen=True)
class PaymentRequired:
	"""Not a failure: the next step for a paid join is checkout."""

	activity_id: str
	user_id: str
	activity_name: str
	amount: int | float
	currency: str

	reason = "payment_required"

	@property
	def message(self) -> str:
		return PAYMENT_REQUIRED_MESSAGE


@dataclass(slots=True)
class JoinResult:
	outcome: JoinOutcome
	joiner: Optional[Joiner] = None
	payment_required: Optional[PaymentRequired] = None
	connected_to_owner: bool = False
