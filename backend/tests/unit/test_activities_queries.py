from datetime import datetime, timedelta, timezone

import pytest

from floc.domain.activities.queries import ActivityQueries, decode_cursor, encode_cursor
from floc.domain.activities.schemas import ActivityCreateRequest, ActivityView
from floc.domain.activities.service import ActivityParticipationEngine
from floc.domain.connections.service import ConnectionGraphManager
from floc.domain.exceptions import NotFound

NOW = datetime.now(timezone.utc)


def _payload(name: str, *, days: int, private: bool = False, **extra) -> ActivityCreateRequest:
	return ActivityCreateRequest(
		name=name,
		location="Court",
		date_time=NOW + timedelta(days=days),
		description="",
		is_private=private,
		**extra,
	)


@pytest.fixture
def engine():
	return ActivityParticipationEngine()


@pytest.fixture
def queries():
	return ActivityQueries()


@pytest.mark.asyncio
async def test_private_activity_is_reachable_by_id(engine, queries, make_user):
	owner = await make_user("u1")
	stranger = await make_user("u9")
	activity_id = await engine.create(owner, _payload("Secret", days=1, private=True))

	activity = await queries.get_activity(stranger, activity_id)
	assert activity.is_private
	with pytest.raises(NotFound):
		await queries.get_activity(stranger, "missing")


@pytest.mark.asyncio
async def test_my_activities_lists_created_and_joined(engine, queries, make_user):
	me = await make_user("me")
	other = await make_user("other")
	mine = await engine.create(me, _payload("Mine", days=3))
	joined = await engine.create(other, _payload("Joined", days=1, private=True))
	await engine.create(other, _payload("Not mine", days=2))
	await engine.join(me, joined)

	activities = await queries.list_my_activities(me)

	assert [a.id for a in activities] == [joined, mine]


@pytest.mark.asyncio
async def test_profile_lists_past_visible_activities_newest_first(engine, queries, make_user):
	profile = await make_user("p1")
	viewer = await make_user("v1")
	old = await engine.create(profile, _payload("Old", days=-10))
	recent = await engine.create(profile, _payload("Recent", days=-1))
	await engine.create(profile, _payload("Upcoming", days=5))
	await engine.create(profile, _payload("Hidden", days=-2, private=True))

	activities = await queries.list_profile_activities(viewer, "p1")
	assert [a.id for a in activities] == [recent, old]

	own_view = await queries.list_profile_activities(profile, "p1")
	assert len(own_view) == 3


@pytest.mark.asyncio
async def test_profile_includes_activities_the_profile_joined(engine, queries, make_user):
	profile = await make_user("p1")
	host = await make_user("host")
	viewer = await make_user("v1")
	activity_id = await engine.create(host, _payload("Joined", days=-3))
	await engine.join(profile, activity_id)

	activities = await queries.list_profile_activities(viewer, "p1")
	assert [a.id for a in activities] == [activity_id]


@pytest.mark.asyncio
async def test_connections_feed(engine, queries, make_user):
	viewer = await make_user("viewer")
	friend = await make_user("friend", username="Friend")
	outsider = await make_user("outsider")
	await ConnectionGraphManager().connect_to_user(viewer, "friend")

	public = await engine.create(friend, _payload("Public", days=1))
	await engine.create(friend, _payload("Private", days=2, private=True))
	already = await engine.create(friend, _payload("Already joined", days=3))
	await engine.join(viewer, already)
	joined_by_friend = await engine.create(outsider, _payload("Outsider game", days=4))
	await engine.join(friend, joined_by_friend)
	await engine.create(outsider, _payload("Unrelated", days=5))

	page = await queries.list_connections_activities(viewer)
	assert [(item.activity.id, item.allow_join) for item in page.items] == [(public, True)]
	assert page.items[0].activity.created_by == "Friend"
	assert page.next_cursor is None

	wide = await queries.list_connections_activities(viewer, include_joined=True)
	assert [(item.activity.id, item.allow_join) for item in wide.items] == [(public, True), (joined_by_friend, False)]


@pytest.mark.asyncio
async def test_connections_feed_paginates(engine, queries, make_user):
	viewer = await make_user("viewer")
	friend = await make_user("friend")
	await ConnectionGraphManager().connect_to_user(viewer, "friend")
	ids = [await engine.create(friend, _payload(f"Game {day}", days=day)) for day in (1, 2, 3)]

	first = await queries.list_connections_activities(viewer, limit=2)
	assert [item.activity.id for item in first.items] == ids[:2]
	assert first.next_cursor

	second = await queries.list_connections_activities(viewer, limit=2, cursor=first.next_cursor)
	assert [item.activity.id for item in second.items] == ids[2:]
	assert second.next_cursor is None


@pytest.mark.asyncio
async def test_connections_feed_without_connections_is_empty(queries, make_user):
	loner = await make_user("loner")
	page = await queries.list_connections_activities(loner)
	assert page.items == [] and page.next_cursor is None


def test_cursor_round_trip_and_rejection():
	cursor = encode_cursor("2025-01-01T10:00:00.000+00:00", "a1")
	assert decode_cursor(cursor) == ("2025-01-01T10:00:00.000+00:00", "a1")
	with pytest.raises(ValueError):
		decode_cursor("bm9waXBl")


@pytest.mark.asyncio
async def test_activity_view_hides_payment_fields_from_non_owners(engine, make_user):
	owner = await make_user("u1")
	activity_id = await engine.create(owner, _payload("Paid", days=1, is_paid=True, cost=25000))
	await engine.record_paid_join(
		activity_id,
		"u2",
		email="u2@example.com",
		username="u2",
		amount=25000,
		payment_id="pay_1",
		order_id="order_1",
		paid_at="2025-01-01T10:00:00.000+00:00",
	)
	activity = await engine.get(activity_id)

	owner_view = ActivityView.from_activity(activity, "u1")
	guest_view = ActivityView.from_activity(activity, "u3")

	assert owner_view.is_owner and owner_view.payment_details.participant_count == 1
	paid_row = next(j for j in owner_view.joiners if j.user_id == "u2")
	assert paid_row.payment_status == "completed" and paid_row.paid_amount == 25000
	assert guest_view.payment_details is None
	assert all(j.payment_status is None for j in guest_view.joiners)
	assert guest_view.is_joined is False
	assert guest_view.joiner_count == 2
