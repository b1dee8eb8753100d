"""Tests for EntityManager.fetch_entity_by_key.

Critical Invariants:
- check_cache_first serves cached entities without a remote call
- A cached Deleted entity reads as "not found" unless merging overwrites changes
- from_cache tells which path produced the answer
"""

import pytest

from entitycache import (
    EntityKey,
    EntityState,
    MergeStrategy,
    MissingKeyError,
    RemoteQueryError,
)


@pytest.mark.asyncio
async def test_fetch_goes_remote_by_default(manager, service, ids):
    fetched = await manager.fetch_entity_by_key("Customer", ids["ALFKI"])

    assert fetched.from_cache is False
    assert fetched.entity.companyName == "Alfreds Futterkiste"
    assert fetched.entity.entity_aspect.entity_state is EntityState.UNCHANGED
    assert fetched.entity_key == fetched.entity.entity_aspect.get_key()
    assert len(service.executed_queries) == 1

    again = await manager.fetch_entity_by_key("Customer", ids["ALFKI"])
    assert again.entity is fetched.entity
    assert len(service.executed_queries) == 2


@pytest.mark.asyncio
async def test_check_cache_first(manager, service, ids):
    first = await manager.fetch_entity_by_key("Customer", ids["ALFKI"], check_cache_first=True)
    second = await manager.fetch_entity_by_key("Customer", ids["ALFKI"], check_cache_first=True)

    assert first.from_cache is False
    assert second.from_cache is True
    assert second.entity is first.entity
    assert len(service.executed_queries) == 1


@pytest.mark.asyncio
async def test_fetch_by_entity_key(manager, ids):
    customer_type = manager.metadata_store.get_entity_type("Customer")

    fetched = await manager.fetch_entity_by_key(EntityKey(customer_type, ids["BSBEV"].upper()))

    assert fetched.entity.companyName == "B's Beverages"


@pytest.mark.asyncio
async def test_fetch_composite_key(manager):
    fetched = await manager.fetch_entity_by_key("OrderDetail", 10250, 2)

    assert fetched.entity.quantity == 35


@pytest.mark.asyncio
async def test_not_found_remotely(manager):
    fetched = await manager.fetch_entity_by_key("Order", 99999, check_cache_first=True)

    assert fetched.entity is None
    assert fetched.from_cache is False


@pytest.mark.asyncio
async def test_deleted_entity_reads_as_missing_from_cache(manager, service, ids):
    customer = (await manager.fetch_entity_by_key("Customer", ids["ALFKI"])).entity
    customer.entity_aspect.set_deleted()

    fetched = await manager.fetch_entity_by_key("Customer", ids["ALFKI"], check_cache_first=True)

    assert fetched.entity is None
    assert fetched.from_cache is True
    assert len(service.executed_queries) == 1
    assert customer.entity_aspect.entity_state is EntityState.DELETED


@pytest.mark.asyncio
async def test_deleted_entity_reads_as_missing_remotely_under_preserve(manager, ids):
    customer = (await manager.fetch_entity_by_key("Customer", ids["ALFKI"])).entity
    customer.entity_aspect.set_deleted()

    fetched = await manager.fetch_entity_by_key("Customer", ids["ALFKI"])

    assert fetched.entity is None
    assert fetched.from_cache is False
    assert customer.entity_aspect.entity_state is EntityState.DELETED


@pytest.mark.asyncio
async def test_overwrite_changes_refetches_deleted_entity(manager, service, ids):
    customer = (await manager.fetch_entity_by_key("Customer", ids["ALFKI"])).entity
    customer.entity_aspect.set_deleted()
    manager.set_query_options(MergeStrategy.OVERWRITE_CHANGES)

    fetched = await manager.fetch_entity_by_key("Customer", ids["ALFKI"], check_cache_first=True)

    assert fetched.entity is customer
    assert fetched.from_cache is False
    assert customer.entity_aspect.entity_state is EntityState.UNCHANGED
    assert len(service.executed_queries) == 2
    assert not manager.has_changes()


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [(), ("Order",), ("Order", None), ("Order", 1, 2)])
async def test_fetch_without_complete_key_fails(manager, service, args):
    with pytest.raises(MissingKeyError):
        await manager.fetch_entity_by_key(*args)
    assert service.executed_queries == []


@pytest.mark.asyncio
async def test_fetch_without_executor_fails(offline_manager):
    with pytest.raises(RemoteQueryError, match="No query executor"):
        await offline_manager.fetch_entity_by_key("Order", 10248)


@pytest.mark.asyncio
async def test_check_cache_first_works_offline(offline_manager):
    order = offline_manager.create_entity("Order", {"orderID": 10248}, EntityState.UNCHANGED)

    fetched = await offline_manager.fetch_entity_by_key("Order", 10248, check_cache_first=True)

    assert fetched.entity is order
    assert fetched.from_cache is True
