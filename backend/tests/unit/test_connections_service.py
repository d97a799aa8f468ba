import itertools

import pytest

from floc.domain.connections import service as connections_service
from floc.domain.connections.models import EDGE_INTENTS, pair_id
from floc.domain.connections.service import ConnectionGraphManager
from floc.domain.exceptions import AlreadyConnected, NotFound, SelfConnection, Unauthenticated
from floc.domain.users import service as users_service
from floc.domain.users.models import USERS
from floc.infra.documents import DELETE_FIELD, documents


@pytest.fixture
def ticking_clock(monkeypatch):
	"""Distinct, increasing connectedAt values for ordering assertions."""
	ticks = itertools.count(1)
	monkeypatch.setattr(
		connections_service,
		"now_iso",
		lambda: f"2025-01-01T00:00:{next(ticks):02d}.000+00:00",
	)


@pytest.mark.asyncio
async def test_connect_writes_both_sides(make_user):
	alice = await make_user("alice")
	await make_user("bob")
	manager = ConnectionGraphManager()

	peer_id = await manager.connect(alice, "BOB@example.com")
	assert peer_id == "bob"

	a = await users_service.get_user("alice")
	b = await users_service.get_user("bob")
	assert a.connections["bob"]["email"] == "bob@example.com"
	assert b.connections["alice"]["email"] == "alice@example.com"
	assert a.connections["bob"]["connectedAt"] == b.connections["alice"]["connectedAt"]


@pytest.mark.asyncio
async def test_connect_unknown_email_writes_nothing(make_user, fake_redis):
	alice = await make_user("alice")
	before = await fake_redis.hgetall("doc:users:alice")

	with pytest.raises(NotFound):
		await ConnectionGraphManager().connect(alice, "u2@example.com")

	assert await fake_redis.hgetall("doc:users:alice") == before
	assert await fake_redis.exists("doc:users:u2") == 0


@pytest.mark.asyncio
async def test_connect_to_self_is_rejected(make_user):
	alice = await make_user("alice")
	manager = ConnectionGraphManager()
	with pytest.raises(SelfConnection):
		await manager.connect(alice, "Alice@Example.com")
	with pytest.raises(SelfConnection):
		await manager.connect_to_user(alice, "alice")


@pytest.mark.asyncio
async def test_connect_twice_is_rejected(make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	manager = ConnectionGraphManager()
	await manager.connect(alice, "bob@example.com")
	with pytest.raises(AlreadyConnected):
		await manager.connect(alice, "bob@example.com")
	with pytest.raises(AlreadyConnected):
		await manager.connect_to_user(bob, "alice")


@pytest.mark.asyncio
async def test_connect_requires_actor():
	with pytest.raises(Unauthenticated):
		await ConnectionGraphManager().connect(None, "bob@example.com")


@pytest.mark.asyncio
async def test_disconnect_removes_both_sides(make_user):
	alice = await make_user("alice")
	await make_user("bob")
	manager = ConnectionGraphManager()
	await manager.connect_to_user(alice, "bob")

	await manager.disconnect(alice, "bob")

	assert (await users_service.get_user("alice")).connections == {}
	assert (await users_service.get_user("bob")).connections == {}
	with pytest.raises(NotFound) as exc_info:
		await manager.disconnect(alice, "bob")
	assert exc_info.value.reason == "connection_missing"


@pytest.mark.asyncio
async def test_list_edges_orders_by_connected_at(make_user, ticking_clock):
	alice = await make_user("alice")
	for peer in ("zoe", "bob", "mia"):
		await make_user(peer)
		await ConnectionGraphManager().connect_to_user(alice, peer)

	edges = await ConnectionGraphManager().list_edges("alice")
	assert [edge.peer_id for edge in edges] == ["zoe", "bob", "mia"]
	assert all(edge.consistent for edge in edges)


@pytest.mark.asyncio
async def test_mutual_status_puts_viewer_then_mutuals_first(make_user):
	subject = await make_user("sub")
	viewer = await make_user("vie", username="Viewer")
	await make_user("amy", username="amy")
	await make_user("bob", username="Bob")
	await make_user("cat", username="cat")
	manager = ConnectionGraphManager()
	for peer in ("amy", "cat", "vie", "bob"):
		await manager.connect_to_user(subject, peer)
	await manager.connect_to_user(viewer, "cat")
	await manager.connect_to_user(viewer, "bob")

	edges = await manager.list_edges_with_mutual_status("sub", "vie")

	assert [edge.peer_id for edge in edges] == ["vie", "bob", "cat", "amy"]
	assert edges[0].is_self and edges[0].is_mutual
	assert [edge.is_mutual for edge in edges[1:]] == [True, True, False]

	again = await manager.list_edges_with_mutual_status("sub", "vie")
	assert [edge.peer_id for edge in again] == [edge.peer_id for edge in edges]


@pytest.mark.asyncio
async def test_one_sided_edge_is_flagged_and_healed_on_read(make_user):
	alice = await make_user("alice")
	await make_user("bob")
	manager = ConnectionGraphManager(self_heal=True)
	await manager.connect_to_user(alice, "bob")
	connected_at = (await users_service.get_user("alice")).connections["bob"]["connectedAt"]
	await documents.update(USERS, "bob", {"connections.alice": DELETE_FIELD})

	edges = await manager.list_edges("alice")

	assert [(edge.peer_id, edge.consistent) for edge in edges] == [("bob", False)]
	bob = await users_service.get_user("bob")
	assert bob.connections["alice"]["connectedAt"] == connected_at


@pytest.mark.asyncio
async def test_one_sided_edge_is_left_alone_without_self_heal(make_user):
	alice = await make_user("alice")
	await make_user("bob")
	manager = ConnectionGraphManager(self_heal=False)
	await manager.connect_to_user(alice, "bob")
	await documents.update(USERS, "bob", {"connections.alice": DELETE_FIELD})

	edges = await manager.list_edges("alice")

	assert edges[0].consistent is False
	assert "alice" not in (await users_service.get_user("bob")).connections


@pytest.mark.asyncio
async def test_heal_skips_pair_with_pending_disconnect(make_user):
	alice = await make_user("alice")
	await make_user("bob")
	manager = ConnectionGraphManager(self_heal=True)
	await manager.connect_to_user(alice, "bob")
	await documents.update(USERS, "bob", {"connections.alice": DELETE_FIELD})
	await documents.set(EDGE_INTENTS, pair_id("alice", "bob"), {"op": "disconnect", "initiator": "bob"})

	assert await manager.heal_edge("alice", "bob") is False
	assert "alice" not in (await users_service.get_user("bob")).connections


@pytest.mark.asyncio
async def test_two_phase_connect_and_disconnect(make_user):
	alice = await make_user("alice")
	await make_user("bob")
	manager = ConnectionGraphManager(write_mode="two_phase")

	await manager.connect_to_user(alice, "bob")
	assert await manager.are_connected("alice", "bob")
	assert await manager.are_connected("bob", "alice")
	assert await documents.list_ids(EDGE_INTENTS) == []

	await manager.disconnect(alice, "bob")
	assert not await manager.are_connected("alice", "bob")
	assert not await manager.are_connected("bob", "alice")
	assert await documents.list_ids(EDGE_INTENTS) == []
