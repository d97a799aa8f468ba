import pytest

from floc.infra.documents import (
	DELETE_FIELD,
	DocRef,
	DocumentMissing,
	DocumentStore,
	Increment,
	field_path,
	flatten,
	is_valid_key,
	unflatten,
)


@pytest.fixture
def store():
	return DocumentStore()


def test_flatten_and_unflatten_keep_empty_maps():
	fields = flatten("", {"email": "a@example.com", "connections": {}, "meta": {"n": 1}})
	assert fields == {"email": '"a@example.com"', "connections": "{}", "meta.n": "1"}
	assert unflatten(fields) == {"email": "a@example.com", "connections": {}, "meta": {"n": 1}}


@pytest.mark.asyncio
async def test_set_and_get_nested_document(store):
	await store.set("users", "u1", {"email": "a@example.com", "connections": {}})
	assert await store.get("users", "u1") == {"email": "a@example.com", "connections": {}}
	assert await store.exists("users", "u1")
	assert await store.get("users", "missing") is None


@pytest.mark.asyncio
async def test_field_delete_leaves_sibling_keys(store, fake_redis):
	await store.set(
		"activities",
		"a1",
		{"userId": "u1", "joiners": {"u1": {"email": "a"}, "u2": {"email": "b"}}},
	)
	await store.update("activities", "a1", {"joiners.u2": DELETE_FIELD})

	doc = await store.get("activities", "a1")
	assert doc["joiners"] == {"u1": {"email": "a"}}
	assert await store.with_map_key("activities", "joiners", ["u2"]) == []
	assert await store.with_map_key("activities", "joiners", ["u1"]) == ["a1"]
	assert await fake_redis.hget("doc:activities:a1", "__rev") == "2"


@pytest.mark.asyncio
async def test_deleting_last_key_keeps_an_empty_map(store):
	await store.set("activities", "a1", {"userId": "u1", "joiners": {"u1": {"email": "a"}}})
	await store.update("activities", "a1", {"joiners.u1": DELETE_FIELD})
	assert (await store.get("activities", "a1"))["joiners"] == {}


@pytest.mark.asyncio
async def test_increment_accumulates(store):
	await store.set("activities", "a1", {"paymentDetails": {}})
	await store.update("activities", "a1", {"paymentDetails.participantCount": Increment(1)})
	await store.update(
		"activities",
		"a1",
		{"paymentDetails.participantCount": Increment(1), "paymentDetails.totalCollected": Increment(250)},
	)
	doc = await store.get("activities", "a1")
	assert doc["paymentDetails"] == {"participantCount": 2, "totalCollected": 250}


@pytest.mark.asyncio
async def test_increment_rejects_non_numeric_field(store):
	await store.set("activities", "a1", {"name": "Squash"})
	with pytest.raises(TypeError):
		await store.update("activities", "a1", {"name": Increment(1)})


@pytest.mark.asyncio
async def test_update_missing_document_raises(store):
	with pytest.raises(DocumentMissing):
		await store.update("users", "nobody", {"username": "x"})


@pytest.mark.asyncio
async def test_field_index_is_case_insensitive_and_follows_updates(store):
	await store.set("users", "u1", {"email": "Alice@Example.com"})
	assert await store.where("users", "email", "alice@example.com") == ["u1"]

	await store.update("users", "u1", {"email": "alice@new.example.com"})
	assert await store.where("users", "email", "alice@example.com") == []
	assert await store.where("users", "email", "ALICE@new.example.com") == ["u1"]


@pytest.mark.asyncio
async def test_where_in_unions_values(store):
	await store.set("activities", "a1", {"userId": "u1"})
	await store.set("activities", "a2", {"userId": "u2"})
	await store.set("activities", "a3", {"userId": "u3"})
	assert await store.where_in("activities", "userId", ["u1", "u3"]) == ["a1", "a3"]
	assert await store.where_in("activities", "userId", []) == []


@pytest.mark.asyncio
async def test_query_on_unindexed_field_is_rejected(store):
	with pytest.raises(ValueError):
		await store.where("activities", "name", "Squash")


@pytest.mark.asyncio
async def test_delete_removes_document_and_index_entries(store):
	await store.set("activities", "a1", {"userId": "u1", "joiners": {"u1": {}}})
	assert await store.delete("activities", "a1") is True
	assert await store.get("activities", "a1") is None
	assert await store.where("activities", "userId", "u1") == []
	assert await store.list_ids("activities") == []
	assert await store.delete("activities", "a1") is False


@pytest.mark.asyncio
async def test_batch_commits_every_write(store):
	await store.set("users", "u3", {"email": "c@example.com"})
	batch = store.batch()
	batch.set("users", "u1", {"email": "a@example.com"}).set("users", "u2", {"email": "b@example.com"})
	batch.delete("users", "u3")
	assert len(batch) == 3
	await batch.commit()
	assert await store.list_ids("users") == ["u1", "u2"]


@pytest.mark.asyncio
async def test_failing_batch_writes_nothing(store):
	batch = store.batch().set("users", "u1", {"email": "a@example.com"}).update("users", "ghost", {"email": "x"})
	with pytest.raises(DocumentMissing):
		await batch.commit()
	assert await store.get("users", "u1") is None


@pytest.mark.asyncio
async def test_transaction_without_writes_commits_nothing(store, fake_redis):
	await store.set("users", "u1", {"email": "a@example.com"})
	result = await store.run_transaction([DocRef("users", "u1")], lambda txn: txn.get("users", "u1")["email"])
	assert result == "a@example.com"
	assert await fake_redis.hget("doc:users:u1", "__rev") == "1"


@pytest.mark.asyncio
async def test_dotted_keys_are_rejected(store):
	with pytest.raises(ValueError):
		await store.set("users", "u1", {"a.b": 1})


@pytest.mark.asyncio
async def test_id_indexes_are_case_sensitive(store):
	await store.set("activities", "a1", {"userId": "Ab"})
	await store.set("activities", "a2", {"userId": "ab"})
	assert await store.where("activities", "userId", "ab") == ["a2"]
	assert await store.where("activities", "userId", "Ab") == ["a1"]
	assert await store.where_in("activities", "userId", ["AB"]) == []


def test_field_path_rejects_keys_that_would_nest():
	assert field_path("joiners", "u1") == "joiners.u1"
	assert field_path("connections", "u1", "username") == "connections.u1.username"
	with pytest.raises(ValueError):
		field_path("joiners", "jane.doe")
	with pytest.raises(ValueError):
		field_path("joiners", "")
	with pytest.raises(ValueError):
		field_path("joiners", "__rev")


def test_is_valid_key():
	assert is_valid_key("u1")
	assert not is_valid_key("jane.doe")
	assert not is_valid_key("__rev")
	assert not is_valid_key("")
	assert not is_valid_key(None)
