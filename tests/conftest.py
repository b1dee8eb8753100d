"""Shared test fixtures: a small Northwind-style catalog and data service."""

import sys

import pytest

# Ensure src is in path
sys.path.insert(0, "src")

from datetime import datetime

from entitycache import (
    DataProperty,
    DataType,
    EntityManager,
    EntityType,
    InMemoryDataService,
    MetadataStore,
    NavigationProperty,
)

ALFKI = "785efa04-cbf2-4dd7-a7de-083ee17b6ad2"
ANATR = "b61cb22c-6e5e-4c1f-a46a-8a1b1c7e2a01"
AROUT = "f2b4c6d8-1a3e-4b5c-9d7f-0e2a4c6b8d10"
BSBEV = "0c9a8b7e-6d5f-4e3c-8b2a-1f0e9d8c7b6a"
SEVES = "3e5a7c9b-1d2f-4a6c-8e0b-2d4f6a8c0e12"


def build_catalog() -> MetadataStore:
    """Fresh catalog; entity types are bound to the store that registers them."""
    customer = EntityType(
        name="Customer",
        data_properties=(
            DataProperty("customerID", DataType.GUID, is_nullable=False, is_part_of_key=True),
            DataProperty("companyName"),
            DataProperty("contactName"),
            DataProperty("city"),
            DataProperty("country"),
        ),
        navigation_properties=(
            NavigationProperty(
                "orders", "Order", is_scalar=False, foreign_key_names=("customerID",),
                inverse_name="customer",
            ),
        ),
        default_resource_name="Customers",
    )
    employee = EntityType(
        name="Employee",
        data_properties=(
            DataProperty("employeeID", DataType.INTEGER, is_nullable=False, is_part_of_key=True),
            DataProperty("firstName"),
            DataProperty("lastName"),
            DataProperty("title"),
            DataProperty("hireDate", DataType.DATETIME),
            DataProperty("notes"),
            DataProperty("reportsToEmployeeID", DataType.INTEGER),
        ),
        navigation_properties=(
            NavigationProperty(
                "manager", "Employee", foreign_key_names=("reportsToEmployeeID",),
                inverse_name="directReports",
            ),
            NavigationProperty(
                "directReports", "Employee", is_scalar=False,
                foreign_key_names=("reportsToEmployeeID",), inverse_name="manager",
            ),
            NavigationProperty(
                "orders", "Order", is_scalar=False, foreign_key_names=("employeeID",),
                inverse_name="employee",
            ),
        ),
        default_resource_name="Employees",
    )
    category = EntityType(
        name="Category",
        data_properties=(
            DataProperty("categoryID", DataType.INTEGER, is_nullable=False, is_part_of_key=True),
            DataProperty("categoryName"),
        ),
        navigation_properties=(
            NavigationProperty(
                "products", "Product", is_scalar=False, foreign_key_names=("categoryID",),
                inverse_name="category",
            ),
        ),
        default_resource_name="Categories",
    )
    product = EntityType(
        name="Product",
        data_properties=(
            DataProperty("productID", DataType.INTEGER, is_nullable=False, is_part_of_key=True),
            DataProperty("productName"),
            DataProperty("categoryID", DataType.INTEGER),
            DataProperty("unitPrice", DataType.DECIMAL),
            DataProperty("discontinued", DataType.BOOLEAN, default=False),
        ),
        navigation_properties=(
            NavigationProperty(
                "category", "Category", foreign_key_names=("categoryID",), inverse_name="products"
            ),
        ),
        default_resource_name="Products",
    )
    order = EntityType(
        name="Order",
        data_properties=(
            DataProperty("orderID", DataType.INTEGER, is_nullable=False, is_part_of_key=True),
            DataProperty("customerID", DataType.GUID),
            DataProperty("employeeID", DataType.INTEGER),
            DataProperty("orderDate", DataType.DATETIME),
            DataProperty("requiredDate", DataType.DATETIME),
            DataProperty("shippedDate", DataType.DATETIME),
            DataProperty("freight", DataType.FLOAT, default=0.0),
            DataProperty("shipCity"),
        ),
        navigation_properties=(
            NavigationProperty(
                "customer", "Customer", foreign_key_names=("customerID",), inverse_name="orders"
            ),
            NavigationProperty(
                "employee", "Employee", foreign_key_names=("employeeID",), inverse_name="orders"
            ),
            NavigationProperty(
                "orderDetails", "OrderDetail", is_scalar=False, foreign_key_names=("orderID",),
                inverse_name="order",
            ),
        ),
        default_resource_name="Orders",
    )
    order_detail = EntityType(
        name="OrderDetail",
        data_properties=(
            DataProperty("orderID", DataType.INTEGER, is_nullable=False, is_part_of_key=True),
            DataProperty("productID", DataType.INTEGER, is_nullable=False, is_part_of_key=True),
            DataProperty("unitPrice", DataType.DECIMAL),
            DataProperty("quantity", DataType.INTEGER),
        ),
        navigation_properties=(
            NavigationProperty(
                "order", "Order", foreign_key_names=("orderID",), inverse_name="orderDetails"
            ),
            NavigationProperty("product", "Product", foreign_key_names=("productID",)),
        ),
        default_resource_name="OrderDetails",
    )
    return MetadataStore([customer, employee, category, product, order, order_detail])


def seed(service: InMemoryDataService) -> InMemoryDataService:
    service.add_rows(
        "Customer",
        [
            {"customerID": ALFKI, "companyName": "Alfreds Futterkiste",
             "contactName": "Maria Anders", "city": "Berlin", "country": "Germany"},
            {"customerID": ANATR, "companyName": "Ana Trujillo Emparedados",
             "contactName": "Ana Trujillo", "city": "México D.F.", "country": "Mexico"},
            {"customerID": AROUT, "companyName": "Around the Horn",
             "contactName": "Thomas Hardy", "city": "London", "country": "UK"},
            {"customerID": BSBEV, "companyName": "B's Beverages",
             "contactName": "Victoria Ashworth", "city": "London", "country": "UK"},
            {"customerID": SEVES, "companyName": "Seven Seas Imports",
             "contactName": "Hari Kumar", "city": "London", "country": "UK"},
        ],
    )
    service.add_rows(
        "Employee",
        [
            {"employeeID": 1, "firstName": "Nancy", "lastName": "Davolio",
             "title": "Sales Representative", "hireDate": "1992-05-01T00:00:00",
             "notes": "Nancy holds a BA in psychology.", "reportsToEmployeeID": 2},
            {"employeeID": 2, "firstName": "Andrew", "lastName": "Fuller",
             "title": "Vice President, Sales", "hireDate": "1992-08-14T00:00:00",
             "notes": "Joined as a sales representative.", "reportsToEmployeeID": None},
            {"employeeID": 3, "firstName": "Janet", "lastName": "Leverling",
             "title": "Sales Representative", "hireDate": "1992-04-01T00:00:00",
             "notes": "Janet has a BS degree in chemistry.", "reportsToEmployeeID": 2},
            {"employeeID": 4, "firstName": "Steven", "lastName": "Buchanan",
             "title": "Sales Manager", "hireDate": "1993-10-17T00:00:00",
             "notes": "Graduated from St. Andrews.", "reportsToEmployeeID": 2},
        ],
    )
    service.add_rows(
        "Category",
        [
            {"categoryID": 1, "categoryName": "Beverages"},
            {"categoryID": 2, "categoryName": "Condiments"},
            {"categoryID": 3, "categoryName": "Seafood"},
        ],
    )
    service.add_rows(
        "Product",
        [
            {"productID": 1, "productName": "Chai", "categoryID": 1, "unitPrice": "18.00"},
            {"productID": 2, "productName": "Chang", "categoryID": 1, "unitPrice": "19.00"},
            {"productID": 3, "productName": "Aniseed Syrup", "categoryID": 2, "unitPrice": "10.00"},
            {"productID": 4, "productName": "Ikura", "categoryID": 3, "unitPrice": "31.00"},
            {"productID": 5, "productName": "Konbu", "categoryID": 3, "unitPrice": "6.00",
             "discontinued": True},
        ],
    )
    service.add_rows(
        "Order",
        [
            {"orderID": 10248, "customerID": ALFKI, "employeeID": 1,
             "orderDate": datetime(1996, 7, 4), "requiredDate": datetime(1996, 8, 1),
             "shippedDate": datetime(1996, 7, 16), "freight": 32.38, "shipCity": "Berlin"},
            {"orderID": 10249, "customerID": ALFKI, "employeeID": 2,
             "orderDate": datetime(1996, 7, 5), "requiredDate": datetime(1996, 8, 16),
             "shippedDate": datetime(1996, 7, 10), "freight": 11.61, "shipCity": "Berlin"},
            {"orderID": 10250, "customerID": AROUT, "employeeID": 1,
             "orderDate": datetime(1996, 7, 8), "requiredDate": datetime(1996, 8, 5),
             "shippedDate": datetime(1996, 8, 12), "freight": 165.83, "shipCity": "London"},
            {"orderID": 10251, "customerID": AROUT, "employeeID": 3,
             "orderDate": datetime(1996, 7, 8), "requiredDate": datetime(1996, 8, 5),
             "shippedDate": None, "freight": 41.34, "shipCity": "London"},
            {"orderID": 10252, "customerID": BSBEV, "employeeID": 4,
             "orderDate": datetime(1997, 1, 10), "requiredDate": datetime(1997, 2, 7),
             "shippedDate": datetime(1997, 1, 20), "freight": 151.30, "shipCity": "London"},
            {"orderID": 10253, "customerID": None, "employeeID": 1,
             "orderDate": datetime(1997, 2, 1), "requiredDate": datetime(1997, 3, 1),
             "shippedDate": None, "freight": 58.17, "shipCity": None},
        ],
    )
    service.add_rows(
        "OrderDetail",
        [
            {"orderID": 10248, "productID": 1, "unitPrice": "18.00", "quantity": 12},
            {"orderID": 10248, "productID": 3, "unitPrice": "10.00", "quantity": 10},
            {"orderID": 10249, "productID": 4, "unitPrice": "31.00", "quantity": 9},
            {"orderID": 10250, "productID": 1, "unitPrice": "18.00", "quantity": 10},
            {"orderID": 10250, "productID": 2, "unitPrice": "19.00", "quantity": 35},
            {"orderID": 10250, "productID": 5, "unitPrice": "6.00", "quantity": 15},
            {"orderID": 10252, "productID": 4, "unitPrice": "31.00", "quantity": 40},
        ],
    )
    return service


@pytest.fixture
def catalog() -> MetadataStore:
    """Fresh client-side catalog."""
    return build_catalog()


@pytest.fixture
def service() -> InMemoryDataService:
    """Seeded in-memory data service with its own catalog."""
    return seed(InMemoryDataService(build_catalog()))


@pytest.fixture
def manager(catalog, service) -> EntityManager:
    """Manager with a pre-populated catalog talking to the seeded service."""
    return EntityManager(catalog, executor=service)


@pytest.fixture
def offline_manager(catalog) -> EntityManager:
    """Manager with a catalog and no executor (cache-only use)."""
    return EntityManager(catalog)


@pytest.fixture
def ids() -> dict[str, str]:
    """Customer GUIDs by their classic Northwind codes."""
    return {"ALFKI": ALFKI, "ANATR": ANATR, "AROUT": AROUT, "BSBEV": BSBEV, "SEVES": SEVES}
