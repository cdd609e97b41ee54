import os

#must be set before checkout.data.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Generator

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from checkout.data.database import Base, get_db
import checkout.data.models  # noqa: F401
from checkout.services.auth import Identity
from checkout.services.cart_service import CartService
from checkout.services.checkout_service import CheckoutOrchestrator
from checkout.services.fulfillment_service import FulfillmentService
from checkout.services.lock_service import LockService
from checkout.services.notification_service import NotificationDispatcher
from checkout.services.order_ledger import OrderLedger
from tests.fakes import FakeCatalogClient, FakeGateway, FakeMailTransport, FakeSigner


#markers by folder
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def buyer() -> Identity:
    return Identity(user_id="user-1", email="alice@example.com", name="Alice")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def catalog() -> FakeCatalogClient:
    return FakeCatalogClient({"A": "tracks/song-a.mp3", "B": "tracks/song-b.mp3"})


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def mail() -> FakeMailTransport:
    return FakeMailTransport()


@pytest.fixture
def lock_service() -> LockService:
    return LockService(client=fakeredis.FakeRedis(decode_responses=True))


@pytest.fixture
def orchestrator(db, gateway, catalog, signer, mail, lock_service) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        carts=CartService(db),
        ledger=OrderLedger(db),
        gateway=gateway,
        fulfillment=FulfillmentService(catalog, signer, ttl_seconds=600),
        notifier=NotificationDispatcher(mail, ttl_seconds=600),
        lock_service=lock_service,
    )


@pytest.fixture
def song_a() -> dict:
    return {
        "catalog_item_id": "A",
        "title": "Song A",
        "attribution_label": "Artist X",
        "unit_price": 9.99,
        "quantity": 1,
    }


@pytest.fixture
def current_user(buyer):
    """Mutable holder so a test can switch the authenticated user."""
    return {"identity": buyer}


@pytest.fixture
def client(session_factory, gateway, catalog, signer, mail, lock_service, current_user) -> Generator[TestClient, None, None]:
    from checkout.main import app
    from checkout.api import deps

    def _override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[deps.require_user] = lambda: current_user["identity"]
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_catalog_client] = lambda: catalog
    app.dependency_overrides[deps.get_storage_signer] = lambda: signer
    app.dependency_overrides[deps.get_mail_transport] = lambda: mail
    app.dependency_overrides[deps.get_lock_service] = lambda: lock_service

    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
