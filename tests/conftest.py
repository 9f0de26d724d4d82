"""
conftest.py — Shared Test Fixtures for Renewal Risk

Provides an in-memory SQLite database, a FastAPI TestClient wired to the
test session, a fixed reference clock and factory fixtures for the core
models (User, Account, Estimate, Interaction, Task).

Business Rules:
- All tests run against an isolated in-memory DB (no prod data risk)
- Each test function gets fresh tables
- SAVEPOINTs work (pysqlite's own transaction handling is disabled)

Called by: all test files via pytest autodiscovery
Depends on: renewal_risk.models (Base), renewal_risk.database (get_db)
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing renewal_risk modules
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime, timedelta, timezone
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from renewal_risk.models import Account, Base, Estimate, Interaction, Task, User

# ── In-memory SQLite engine ──────────────────────────────────────────

TEST_DB_URL = "sqlite://"

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_conn, _):
    """Let SQLAlchemy own BEGIN so SAVEPOINT works, and turn FKs on."""
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


# ── Reference clock ──────────────────────────────────────────────────
# 18:00 UTC is midday in America/Chicago, so the business date is TODAY.

NOW = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 2)


def in_days(n: int) -> date:
    return TODAY + timedelta(days=n)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session: Session):
    """TestClient whose requests share the test session."""
    from renewal_risk.database import get_db
    from renewal_risk.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


_ids = count(1)


@pytest.fixture()
def make_user(db_session: Session):
    def _make(email=None, name="Test User", is_active=True, **kw) -> User:
        n = next(_ids)
        user = User(
            id=kw.pop("id", f"user-{n}"),
            email=email or f"user{n}@example.com",
            name=name,
            is_active=is_active,
            **kw,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def make_account(db_session: Session):
    def _make(name="Acme Grounds", **kw) -> Account:
        account = Account(id=kw.pop("id", f"acct-{next(_ids)}"), name=name, **kw)
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture()
def make_estimate(db_session: Session):
    def _make(account, ends_in=None, status="Contract Signed", **kw) -> Estimate:
        kw.setdefault("division", "Maintenance")
        kw.setdefault("address", "100 Main St")
        est = Estimate(
            id=kw.pop("id", f"est-{next(_ids)}"),
            account_id=account.id,
            status=status,
            contract_end=in_days(ends_in) if ends_in is not None else None,
            **kw,
        )
        db_session.add(est)
        db_session.commit()
        return est

    return _make


@pytest.fixture()
def make_interaction(db_session: Session):
    def _make(account, days_ago: int, kind="call") -> Interaction:
        inter = Interaction(
            id=f"int-{next(_ids)}",
            account_id=account.id,
            kind=kind,
            occurred_at=NOW - timedelta(days=days_ago),
        )
        db_session.add(inter)
        db_session.commit()
        return inter

    return _make


@pytest.fixture()
def make_task(db_session: Session):
    def _make(title="Call customer", due_in=0, assigned_to=None, status="todo", **kw) -> Task:
        task = Task(
            id=kw.pop("id", f"task-{next(_ids)}"),
            title=title,
            due_date=in_days(due_in) if due_in is not None else None,
            assigned_to=assigned_to,
            status=status,
            **kw,
        )
        db_session.add(task)
        db_session.commit()
        return task

    return _make
