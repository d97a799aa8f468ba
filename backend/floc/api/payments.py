"""REST API surface for the paid-join checkout flow."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from floc.domain.payments.processor import build_checkout_session
from floc.domain.payments.schemas import (
	BeginPaymentRequest,
	BeginPaymentResponse,
	ConfirmPaymentRequest,
	ConfirmPaymentResponse,
	PaymentOrderView,
)
from floc.domain.payments.service import PaymentGate
from floc.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/payments", tags=["payments"])


def get_gate() -> PaymentGate:
	return PaymentGate()


@router.post("/orders", response_model=BeginPaymentResponse, status_code=status.HTTP_201_CREATED)
async def begin_payment(
	payload: BeginPaymentRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gate: PaymentGate = Depends(get_gate),
) -> BeginPaymentResponse:
	order = await gate.begin(auth_user, payload.activity_id, connect_to_owner=payload.connect_to_owner)
	return BeginPaymentResponse(order=PaymentOrderView.from_order(order), checkout=build_checkout_session(order))


@router.post("/orders/{order_id}/confirm", response_model=ConfirmPaymentResponse)
async def confirm_payment(
	order_id: str,
	payload: ConfirmPaymentRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gate: PaymentGate = Depends(get_gate),
) -> ConfirmPaymentResponse:
	result = await gate.confirm(
		auth_user,
		order_id,
		payment_id=payload.payment_id,
		signature=payload.signature,
		activity_id=payload.activity_id,
	)
	return ConfirmPaymentResponse(
		order=PaymentOrderView.from_order(result.order),
		joined=True,
		recorded=result.recorded,
		connected_to_owner=result.connected_to_owner,
	)


@router.post("/orders/{order_id}/cancel", response_model=PaymentOrderView)
async def cancel_payment(
	order_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gate: PaymentGate = Depends(get_gate),
) -> PaymentOrderView:
	order = await gate.cancel(auth_user, order_id)
	return PaymentOrderView.from_order(order)
