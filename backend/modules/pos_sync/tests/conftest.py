import asyncio
import json
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.auth import User, get_current_user
from core.database import Base, get_db
from core.menu_models import MenuCategory
from app.main import app
from modules.pos_sync.adapters.iiko_adapter import IikoAdapter
from modules.pos_sync.models.pos_config_models import POSConfiguration, CategoryMapping
from modules.pos_sync.schemas.payload_schemas import OrderPayload
from modules.pos_sync.services.token_manager import TokenManager

SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakePOS:
    """In-memory POS partner answering the iiko style API through MockTransport"""

    def __init__(self):
        self.calls = []
        self.token_counter = 0
        self.auth_status = 200
        self.auth_delay = 0.0
        self.expires_in = 3600
        self.delivery_results = []
        self.nomenclature = {"revision": 1, "groups": [], "products": []}
        self.failing_organizations = set()
        self.stop_list_ids = []
        self.stop_list_status = 200
        self.organizations = [{"id": "org-1", "name": "Main Org"}]
        self.terminal_groups = [{"id": "tg-1", "name": "Front Desk", "organizationId": "org-1"}]

    def count(self, path: str) -> int:
        return sum(1 for called_path, _ in self.calls if called_path == path)

    def bodies(self, path: str):
        return [body for called_path, body in self.calls if called_path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content or b"{}")
        self.calls.append((path, body))

        if path == "/api/1/access_token":
            if self.auth_delay:
                await asyncio.sleep(self.auth_delay)
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, json={"errorDescription": "Login is not authorized"})
            self.token_counter += 1
            return httpx.Response(
                200, json={"token": f"token-{self.token_counter}", "expiresIn": self.expires_in}
            )

        if path == "/api/1/deliveries/create":
            if self.delivery_results:
                status_code, payload = self.delivery_results.pop(0)
                return httpx.Response(status_code, json=payload)
            order = body["order"]
            return httpx.Response(
                200,
                json={
                    "correlationId": "corr-1",
                    "orderInfo": {
                        "id": f"pos-{order['externalNumber']}",
                        "externalNumber": order["externalNumber"],
                        "creationStatus": "Success",
                        "errorInfo": None,
                    },
                },
            )

        if path == "/api/1/nomenclature":
            if body.get("organizationId") in self.failing_organizations:
                return httpx.Response(503, json={"errorDescription": "Service unavailable"})
            return httpx.Response(200, json=self.nomenclature)

        if path == "/api/1/stop_lists":
            if self.stop_list_status != 200:
                return httpx.Response(self.stop_list_status, json={})
            return httpx.Response(
                200,
                json={
                    "terminalGroupStopLists": [
                        {
                            "organizationId": body["organizationIds"][0],
                            "items": [
                                {
                                    "terminalGroupId": "tg-1",
                                    "items": [
                                        {"productId": product_id, "balance": 0}
                                        for product_id in self.stop_list_ids
                                    ],
                                }
                            ],
                        }
                    ]
                },
            )

        if path == "/api/1/organizations":
            return httpx.Response(200, json={"organizations": self.organizations})

        if path == "/api/1/terminal_groups":
            return httpx.Response(
                200,
                json={
                    "terminalGroups": [
                        {"organizationId": body["organizationIds"][0], "items": self.terminal_groups}
                    ]
                },
            )

        return httpx.Response(404, json={"errorDescription": f"Unknown path {path}"})

    def adapter_factory(self, api_url: str) -> IikoAdapter:
        return IikoAdapter(api_url, transport=httpx.MockTransport(self.handler))


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def fake_pos():
    return FakePOS()


@pytest.fixture
def token_manager(fake_pos):
    return TokenManager(adapter_factory=fake_pos.adapter_factory)


@pytest.fixture
def pos_config(db_session):
    config = POSConfiguration(
        config_name="Central Store",
        store_id=1,
        api_url="https://pos.example.com",
        api_login="login-1",
        organization_id="org-1",
        terminal_group_id="tg-1",
        auto_sync_menu=True,
        sync_interval_minutes=30,
        is_active=True,
    )
    db_session.add(config)
    db_session.commit()
    db_session.refresh(config)
    return config


@pytest.fixture
def menu_category(db_session):
    category = MenuCategory(name="Hot Drinks", store_id=1)
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def category_mapping(db_session, menu_category):
    mapping = CategoryMapping(
        external_group_id="grp-drinks",
        external_group_name="Drinks",
        local_category_id=menu_category.id,
        store_id=1,
    )
    db_session.add(mapping)
    db_session.commit()
    return mapping


@pytest.fixture
def make_payload():
    def _make(order_number="A-1001", order_id=1001, store_id=1, **overrides):
        data = {
            "order_id": order_id,
            "order_number": order_number,
            "store_id": store_id,
            "customer": {"name": "Anna", "phone": "+70000000001"},
            "items": [
                {
                    "external_product_id": "prod-latte",
                    "name": "Latte",
                    "quantity": Decimal("2"),
                    "price": Decimal("250.00"),
                }
            ],
        }
        data.update(overrides)
        return OrderPayload.model_validate(data)

    return _make


@pytest.fixture
def admin_user():
    return User(id=1, username="admin", roles=["admin"])


@pytest.fixture
def client(db_session, admin_user):
    """Test client with the database and an admin user overridden."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    async def override_current_user():
        return admin_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_current_user
    yield TestClient(app)
    app.dependency_overrides.clear()
