from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from floc.domain.activities.models import JoinOutcome
from floc.domain.activities.schemas import ActivityCreateRequest, ActivityUpdateRequest
from floc.domain.activities.service import ActivityParticipationEngine
from floc.domain.connections.service import ConnectionGraphManager
from floc.domain.exceptions import NotFound, PaymentNotRequired, PermissionDenied, VerificationFailed
from floc.domain.payments.models import OrderStatus
from floc.domain.payments.processor import build_checkout_session
from floc.domain.payments.service import PaymentGate
from floc.domain.payments.signature import sign, verify

NEXT_WEEK = datetime.now(timezone.utc) + timedelta(days=7)


def _activity(**overrides) -> ActivityCreateRequest:
	payload = {
		"name": "Squash",
		"location": "Court 3",
		"date_time": NEXT_WEEK,
		"description": "",
		"is_paid": True,
		"cost": 25000,
	}
	payload.update(overrides)
	return ActivityCreateRequest(**payload)


@pytest.fixture
def engine():
	return ActivityParticipationEngine()


@pytest.fixture
def gate(engine):
	return PaymentGate(engine=engine)


@pytest_asyncio.fixture
async def paid_activity(engine, make_user):
	owner = await make_user("u1")
	joiner = await make_user("u2")
	activity_id = await engine.create(owner, _activity())
	return owner, joiner, activity_id


def test_signature_scheme():
	signature = sign("order_1", "pay_1", secret="s3cret")
	assert len(signature) == 64
	assert verify("order_1", "pay_1", signature, secret="s3cret")
	assert verify("order_1", "pay_1", signature.upper(), secret="s3cret")
	assert not verify("order_1", "pay_2", signature, secret="s3cret")
	assert not verify("order_1", "pay_1", "", secret="s3cret")


@pytest.mark.asyncio
async def test_paid_join_end_to_end(engine, gate, paid_activity):
	_, joiner, activity_id = paid_activity

	result = await engine.join(joiner, activity_id)
	assert result.outcome is JoinOutcome.PAYMENT_REQUIRED

	order = await gate.begin(joiner, activity_id)
	assert order.order_id.startswith("order_")
	assert (order.amount, order.currency, order.status) == (25000, "INR", OrderStatus.CREATED)

	confirmed = await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=sign(order.order_id, "pay_1"))
	assert confirmed.recorded is True
	assert confirmed.order.status is OrderStatus.COMPLETED

	activity = await engine.get(activity_id)
	assert activity.joiners["u2"].payment_status == "completed"
	assert activity.joiners["u2"].payment_id == "pay_1"
	assert activity.payment_details.participant_count == 1
	assert activity.payment_details.total_collected == 25000
	assert (await engine.join(joiner, activity_id)).outcome is JoinOutcome.ALREADY_JOINED


@pytest.mark.asyncio
async def test_confirm_is_idempotent(engine, gate, paid_activity):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)
	signature = sign(order.order_id, "pay_1")

	await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=signature)
	again = await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=signature)

	assert again.recorded is False
	activity = await engine.get(activity_id)
	assert activity.payment_details.participant_count == 1
	assert activity.payment_details.total_collected == 25000


@pytest.mark.asyncio
async def test_paid_user_leave_then_reconfirm_stays_left(engine, gate, paid_activity):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)
	signature = sign(order.order_id, "pay_1")
	await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=signature)

	assert await engine.leave(joiner, activity_id) is True
	again = await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=signature)

	assert again.recorded is False
	activity = await engine.get(activity_id)
	assert "u2" not in activity.joiners
	assert activity.payment_details.participant_count == 1
	assert activity.payment_details.total_collected == 25000
	assert (await engine.join(joiner, activity_id)).outcome is JoinOutcome.PAYMENT_REQUIRED


@pytest.mark.asyncio
async def test_paid_user_who_left_can_pay_again(engine, gate, paid_activity):
	_, joiner, activity_id = paid_activity
	first = await gate.begin(joiner, activity_id)
	await gate.confirm(joiner, first.order_id, payment_id="pay_1", signature=sign(first.order_id, "pay_1"))
	await engine.leave(joiner, activity_id)

	second = await gate.begin(joiner, activity_id)
	assert second.order_id != first.order_id
	result = await gate.confirm(joiner, second.order_id, payment_id="pay_2", signature=sign(second.order_id, "pay_2"))

	assert result.recorded is True
	activity = await engine.get(activity_id)
	assert activity.joiners["u2"].payment_order_id == second.order_id
	assert activity.payment_details.participant_count == 2
	assert activity.payment_details.total_collected == 50000


@pytest.mark.asyncio
async def test_bad_signature_leaves_order_open(engine, gate, paid_activity):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)

	with pytest.raises(VerificationFailed) as exc_info:
		await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature="deadbeef")
	assert exc_info.value.reason == "bad_signature"

	assert (await gate.get_order(order.order_id)).status is OrderStatus.CREATED
	assert "u2" not in (await engine.get(activity_id)).joiners


@pytest.mark.asyncio
async def test_confirm_rejects_mismatched_user_and_activity(gate, paid_activity, make_user):
	_, joiner, activity_id = paid_activity
	other = await make_user("u3")
	order = await gate.begin(joiner, activity_id)
	signature = sign(order.order_id, "pay_1")

	with pytest.raises(VerificationFailed) as exc_info:
		await gate.confirm(other, order.order_id, payment_id="pay_1", signature=signature)
	assert exc_info.value.reason == "user_mismatch"

	with pytest.raises(VerificationFailed) as exc_info:
		await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=signature, activity_id="other")
	assert exc_info.value.reason == "activity_mismatch"


@pytest.mark.asyncio
async def test_reconfirm_with_other_payment_id_fails(gate, paid_activity):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)
	await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=sign(order.order_id, "pay_1"))

	with pytest.raises(VerificationFailed) as exc_info:
		await gate.confirm(joiner, order.order_id, payment_id="pay_2", signature=sign(order.order_id, "pay_2"))
	assert exc_info.value.reason == "payment_mismatch"


@pytest.mark.asyncio
async def test_confirm_unknown_order(gate, make_user):
	joiner = await make_user("u2")
	with pytest.raises(NotFound):
		await gate.confirm(joiner, "order_missing", payment_id="pay_1", signature="x")


@pytest.mark.asyncio
async def test_begin_rejects_when_no_payment_is_needed(engine, gate, paid_activity):
	owner, joiner, activity_id = paid_activity
	free_id = await engine.create(owner, _activity(is_paid=False, cost=None))

	with pytest.raises(PaymentNotRequired):
		await gate.begin(joiner, free_id)
	with pytest.raises(PaymentNotRequired):
		await gate.begin(owner, activity_id)

	order = await gate.begin(joiner, activity_id)
	await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=sign(order.order_id, "pay_1"))
	with pytest.raises(PaymentNotRequired):
		await gate.begin(joiner, activity_id)
	with pytest.raises(NotFound):
		await gate.begin(joiner, "missing")


@pytest.mark.asyncio
async def test_order_keeps_price_snapshot(engine, gate, paid_activity):
	owner, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)
	await engine.update(owner, activity_id, ActivityUpdateRequest(cost=30000))

	await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=sign(order.order_id, "pay_1"))

	activity = await engine.get(activity_id)
	assert activity.cost == 30000
	assert activity.joiners["u2"].paid_amount == 25000
	assert activity.payment_details.total_collected == 25000


@pytest.mark.asyncio
async def test_cancel_marks_order_and_leaves_activity_alone(engine, gate, paid_activity, fake_redis):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)
	before = await fake_redis.hgetall(f"doc:activities:{activity_id}")

	cancelled = await gate.cancel(joiner, order.order_id)

	assert cancelled.status is OrderStatus.CANCELLED
	assert cancelled.cancelled_at is not None
	assert await fake_redis.hgetall(f"doc:activities:{activity_id}") == before
	assert (await gate.cancel(joiner, order.order_id)).status is OrderStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_by_someone_else_is_denied(gate, paid_activity, make_user):
	_, joiner, activity_id = paid_activity
	other = await make_user("u3")
	order = await gate.begin(joiner, activity_id)
	with pytest.raises(PermissionDenied):
		await gate.cancel(other, order.order_id)


@pytest.mark.asyncio
async def test_cancel_does_not_undo_completed_order(gate, paid_activity):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)
	await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=sign(order.order_id, "pay_1"))
	assert (await gate.cancel(joiner, order.order_id)).status is OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_confirming_a_cancelled_order_completes_it(engine, gate, paid_activity):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)
	await gate.cancel(joiner, order.order_id)

	result = await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=sign(order.order_id, "pay_1"))

	assert result.order.status is OrderStatus.COMPLETED
	assert engine.is_joined(await engine.get(activity_id), "u2")


@pytest.mark.asyncio
async def test_connect_to_owner_is_honoured_on_confirm(gate, paid_activity):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id, connect_to_owner=True)

	result = await gate.confirm(joiner, order.order_id, payment_id="pay_1", signature=sign(order.order_id, "pay_1"))

	assert result.connected_to_owner is True
	assert await ConnectionGraphManager().are_connected("u1", "u2")


@pytest.mark.asyncio
async def test_checkout_session_options(gate, paid_activity):
	_, joiner, activity_id = paid_activity
	order = await gate.begin(joiner, activity_id)

	session = build_checkout_session(order)

	assert session.key == "rzp_test_key"
	assert session.order_id == order.order_id
	assert (session.amount, session.currency) == (25000, "INR")
	assert session.name == "Floc"
	assert session.description == "Payment for Squash"
	assert session.prefill.email == "u2@example.com"
	assert session.prefill.name == "u2"
