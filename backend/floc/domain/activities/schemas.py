"""Pydantic schemas for activity requests and read models."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from floc.domain.activities.models import Activity, JoinResult, PaymentStatus, is_joined


class ActivityCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    location: str = Field(..., min_length=1, max_length=200)
    date_time: datetime
    description: str = Field("", max_length=2000)
    is_private: bool = False
    is_paid: bool = False
    cost: Optional[int] = Field(None, ge=1, description="Smallest currency unit, e.g. paise")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    @model_validator(mode="after")
    def _paid_needs_cost(self) -> "ActivityCreateRequest":
        if self.is_paid and not self.cost:
            raise ValueError("cost is required for paid activities")
        return self


class ActivityUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    date_time: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=2000)
    is_private: Optional[bool] = None
    is_paid: Optional[bool] = None
    cost: Optional[int] = Field(None, ge=1)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    @model_validator(mode="after")
    def _paid_needs_cost(self) -> "ActivityUpdateRequest":
        if self.is_paid and not self.cost:
            raise ValueError("cost is required when marking an activity paid")
        return self


class JoinRequest(BaseModel):
    connect_to_owner: bool = False


class JoinerView(BaseModel):
    user_id: str
    email: Optional[str] = None
    username: Optional[str] = None
    joined_at: Optional[str] = None
    payment_status: Optional[str] = None
    paid_amount: Optional[float] = None
    paid_at: Optional[str] = None


class PaymentDetailsView(BaseModel):
    total_collected: float = 0
    participant_count: int = 0


class ActivityView(BaseModel):
    id: str
    name: str
    location: str
    date_time: str
    description: str
    user_id: str
    created_by: str
    is_private: bool
    is_paid: bool
    cost: Optional[float] = None
    currency: Optional[str] = None
    is_owner: bool = False
    is_joined: bool = False
    allow_join: Optional[bool] = None
    joiner_count: int = 0
    joiners: List[JoinerView] = []
    payment_details: Optional[PaymentDetailsView] = None

    @classmethod
    def from_activity(
        cls,
        activity: Activity,
        viewer_id: Optional[str],
        *,
        allow_join: Optional[bool] = None,
    ) -> "ActivityView":
        is_owner = bool(viewer_id) and viewer_id == activity.user_id
        joiners: List[JoinerView] = []
        for joiner in sorted(activity.joiners.values(), key=lambda j: (j.joined_at or "", j.user_id)):
            # Unpaid entries on paid activities are not participants yet.
            if not is_joined(activity, joiner.user_id):
                continue
            view = JoinerView(user_id=joiner.user_id, email=joiner.email or None, username=joiner.username, joined_at=joiner.joined_at)
            if is_owner and activity.is_paid:
                view.payment_status = joiner.payment_status
                view.paid_amount = joiner.paid_amount
                view.paid_at = joiner.paid_at
            joiners.append(view)
        details = None
        if is_owner and activity.payment_details is not None:
            details = PaymentDetailsView(
                total_collected=activity.payment_details.total_collected,
                participant_count=activity.payment_details.participant_count,
            )
        return cls(
            id=activity.id,
            name=activity.name,
            location=activity.location,
            date_time=activity.date_time,
            description=activity.description,
            user_id=activity.user_id,
            created_by=activity.created_by,
            is_private=activity.is_private,
            is_paid=activity.is_paid,
            cost=activity.cost,
            currency=activity.currency,
            is_owner=is_owner,
            is_joined=is_joined(activity, viewer_id),
            allow_join=allow_join,
            joiner_count=len(joiners),
            joiners=joiners,
            payment_details=details,
        )


class ActivityCreated(BaseModel):
    id: str


class PaymentRequiredView(BaseModel):
    activity_id: str
    activity_name: str
    amount: float
    currency: str
    message: str


class JoinResponse(BaseModel):
    outcome: str
    joiner: Optional[JoinerView] = None
    payment_required: Optional[PaymentRequiredView] = None
    connected_to_owner: bool = False

    @classmethod
    def from_result(cls, result: JoinResult) -> "JoinResponse":
        joiner = None
        if result.joiner is not None:
            joiner = JoinerView(
                user_id=result.joiner.user_id,
                email=result.joiner.email or None,
                username=result.joiner.username,
                joined_at=result.joiner.joined_at,
                payment_status=result.joiner.payment_status,
            )
        required = None
        if result.payment_required is not None:
            pr = result.payment_required
            required = PaymentRequiredView(
                activity_id=pr.activity_id,
                activity_name=pr.activity_name,
                amount=pr.amount,
                currency=pr.currency,
                message=pr.message,
            )
        return cls(
            outcome=result.outcome.value,
            joiner=joiner,
            payment_required=required,
            connected_to_owner=result.connected_to_owner,
        )


class ActivityPageView(BaseModel):
    items: List[ActivityView] = []
    next_cursor: Optional[str] = None


__all__ = [
    "ActivityCreateRequest",
    "ActivityCreated",
    "ActivityPageView",
    "ActivityUpdateRequest",
    "ActivityView",
    "JoinRequest",
    "JoinResponse",
    "JoinerView",
    "PaymentDetailsView",
    "PaymentRequiredView",
    "PaymentStatus",
]
