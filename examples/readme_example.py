import asyncio

from entitycache import EntityManager, EntityQuery, FetchStrategy, MergeStrategy

from examples.catalog import build_service


def on_orders_changed(args) -> None:
    added = ", ".join(str(o.orderID) for o in args.added)
    print(f"{args.relation_array.parent_entity.companyName}.orders gained [{added}]")


async def main() -> None:
    # Empty catalog: metadata is fetched from the service on first use
    manager = EntityManager(executor=build_service())

    london = EntityQuery.from_("Customers").where("city", "==", "london").order_by("companyName")
    customers = (await london.using(manager).execute()).results
    print(f"London customers: {[c.companyName for c in customers]}")

    horn = customers[0]
    horn.orders.array_changed.subscribe(on_orders_changed)
    await horn.orders.load()

    horn.companyName = "Around the Horn Ltd"
    print(f"{horn!r} has_changes={manager.has_changes()}")

    # A requery keeps the local edit under the default merge strategy
    await london.using(manager).execute()
    print(f"After requery: {horn.companyName}")

    # The cache answers the same question without another round trip
    heavy = (
        EntityQuery.from_("Orders")
        .where("freight", ">", 50)
        .using(manager, FetchStrategy.FROM_LOCAL_CACHE)
    )
    print(f"Cached heavy orders: {[o.orderID for o in (await heavy.execute())]}")

    await london.using(manager, MergeStrategy.OVERWRITE_CHANGES).execute()
    print(f"After overwrite: {horn.companyName} has_changes={manager.has_changes()}")


if __name__ == "__main__":
    asyncio.run(main())
