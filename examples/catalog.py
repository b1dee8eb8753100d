"""A two-table order catalog served from memory."""

from datetime import datetime

from entitycache import (
    DataProperty,
    DataType,
    EntityType,
    InMemoryDataService,
    MetadataStore,
    NavigationProperty,
)


def build_catalog() -> MetadataStore:
    customer = EntityType(
        name="Customer",
        data_properties=(
            DataProperty("customerID", DataType.GUID, is_nullable=False, is_part_of_key=True),
            DataProperty("companyName"),
            DataProperty("city"),
        ),
        navigation_properties=(
            NavigationProperty(
                "orders", "Order", is_scalar=False, foreign_key_names=("customerID",),
                inverse_name="customer",
            ),
        ),
        default_resource_name="Customers",
    )
    order = EntityType(
        name="Order",
        data_properties=(
            DataProperty("orderID", DataType.INTEGER, is_nullable=False, is_part_of_key=True),
            DataProperty("customerID", DataType.GUID),
            DataProperty("orderDate", DataType.DATETIME),
            DataProperty("freight", DataType.FLOAT, default=0.0),
        ),
        navigation_properties=(
            NavigationProperty(
                "customer", "Customer", foreign_key_names=("customerID",), inverse_name="orders"
            ),
        ),
        default_resource_name="Orders",
    )
    return MetadataStore([customer, order])


def build_service() -> InMemoryDataService:
    """Backend with its own catalog, as a remote server would have."""
    service = InMemoryDataService(build_catalog())
    service.add_rows(
        "Customer",
        [
            {"customerID": "785efa04-cbf2-4dd7-a7de-083ee17b6ad2",
             "companyName": "Alfreds Futterkiste", "city": "Berlin"},
            {"customerID": "f2b4c6d8-1a3e-4b5c-9d7f-0e2a4c6b8d10",
             "companyName": "Around the Horn", "city": "London"},
            {"customerID": "3e5a7c9b-1d2f-4a6c-8e0b-2d4f6a8c0e12",
             "companyName": "Seven Seas Imports", "city": "London"},
        ],
    )
    service.add_rows(
        "Order",
        [
            {"orderID": 10248, "customerID": "785efa04-cbf2-4dd7-a7de-083ee17b6ad2",
             "orderDate": datetime(1996, 7, 4), "freight": 32.38},
            {"orderID": 10250, "customerID": "f2b4c6d8-1a3e-4b5c-9d7f-0e2a4c6b8d10",
             "orderDate": datetime(1996, 7, 8), "freight": 165.83},
            {"orderID": 10251, "customerID": "f2b4c6d8-1a3e-4b5c-9d7f-0e2a4c6b8d10",
             "orderDate": datetime(1996, 7, 8), "freight": 41.34},
        ],
    )
    return service
