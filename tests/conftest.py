import os
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ENV", "test")
os.environ.setdefault("POS_SEED_DEMO", "0")
os.environ.setdefault("POS_DB_URL", "sqlite+pysqlite:///:memory:")

import apps.pos.app.main as pos  # noqa: E402  (env must be set before import)


@pytest.fixture()
def engine():
    """
    Fresh in-memory database per test. StaticPool keeps a single connection
    so the TestClient worker thread sees the same data as the test.
    """
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    pos.Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture()
def client(engine):
    """
    TestClient bound to the per-test database. Used without a context
    manager so the startup hook (create_all + demo seed) does not run.
    """

    def _get_session():
        with Session(engine) as s:
            yield s

    pos.app.dependency_overrides[pos.get_session] = _get_session
    try:
        yield TestClient(pos.app)
    finally:
        pos.app.dependency_overrides.pop(pos.get_session, None)


@pytest.fixture()
def menu(session) -> Dict[str, "pos.MenuItem"]:
    """One collection with a coffee, a beer and a sold-out special."""
    coll = pos.MenuCollection(name="Main menu", is_active=True)
    session.add(coll)
    session.flush()
    items = {
        "coffee": pos.MenuItem(name="Iced milk coffee", price=15000, category="Drinks", menu_collection_id=coll.id),
        "beer": pos.MenuItem(name="Draft beer", price=20000, category="Drinks", menu_collection_id=coll.id),
        "special": pos.MenuItem(
            name="Grilled squid", price=90000, category="Food", available=False, menu_collection_id=coll.id
        ),
    }
    session.add_all(items.values())
    session.commit()
    return items


@pytest.fixture()
def table(session) -> "pos.Table":
    t = pos.Table(name="Table 1", category="regular", status="available")
    session.add(t)
    session.commit()
    return t
