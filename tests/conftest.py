"""Shared fixtures: an in-memory Motor client, the engines and an app wired to it."""
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from storefront.main import create_app
from storefront.shared.utils import Settings, create_access_token
from storefront.products.store import CatalogStore
from storefront.orders.cart import CartEngine
from storefront.orders.engine import OrderEngine

ADMIN_EMAIL = "admin@example.com"


@pytest.fixture
def settings():
    return Settings(
        MONGO_DB_NAME="storefront_test",
        SECRET_KEY="test-secret",
        ADMIN_EMAILS=[ADMIN_EMAIL],
        RATE_LIMIT_ENABLED=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def mongo_client():
    return AsyncMongoMockClient()


@pytest.fixture
def db(mongo_client, settings):
    return mongo_client[settings.MONGO_DB_NAME]


@pytest.fixture
def customer_id():
    return str(ObjectId())


# --- Engines ---

@pytest.fixture
def catalog(db):
    return CatalogStore(db)


@pytest.fixture
def cart_engine(db, catalog):
    return CartEngine(db, catalog, max_retries=3)


@pytest.fixture
def order_engine(db, catalog, cart_engine):
    return OrderEngine(db, catalog, cart_engine, max_retries=3)


@pytest.fixture
def product_factory(db):
    async def _create(name="Widget", price=10.0, description="A useful widget", category="tools"):
        result = await db.products.insert_one({
            "name": name,
            "description": description,
            "price": price,
            "category": category,
        })
        return str(result.inserted_id)
    return _create


# --- HTTP ---

@pytest.fixture
def client(settings, mongo_client):
    app = create_app(settings, mongodb_client=mongo_client)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def token_for(settings):
    def _token(subject, role="customer"):
        return create_access_token({"sub": subject, "role": role}, config=settings)
    return _token


@pytest.fixture
def auth_headers(token_for, customer_id):
    return {"Authorization": f"Bearer {token_for(customer_id)}"}


@pytest.fixture
def admin_headers(token_for):
    return {"Authorization": f"Bearer {token_for(str(ObjectId()), role='admin')}"}


@pytest.fixture
def create_product(client, admin_headers):
    def _create(name="Widget", price=10.0, description="A useful widget", category="tools"):
        response = client.post(
            "/products/",
            json={"name": name, "price": price, "description": description, "category": category},
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["productId"]
    return _create
