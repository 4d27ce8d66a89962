from __future__ import annotations

import os
from datetime import datetime, timezone

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("ALLOWED_HOSTS", "*")

import pytest  # noqa: E402
import sqlalchemy as sa  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402,F401
from app.db.base import Base  # noqa: E402
from app.services.account_deletion import AccountDeletionService, DeletionConfig  # noqa: E402
from app.services.accounts import SqlAccountStore  # noqa: E402
from app.services.notifications import DeletionNotifier  # noqa: E402
from tests.testkit import (  # noqa: E402
    DASHBOARD_URL,
    DLQ_URL,
    EXECUTOR_URL,
    SENDER,
    ApiClient,
    FakeScheduler,
    FixedClock,
    RecordingEmailSender,
)

T0 = datetime(2025, 12, 9, 19, 9, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def api() -> ApiClient:
    if os.getenv("RUN_API_INTEGRATION", "0") != "1":
        pytest.skip("Tests de integracion deshabilitados. Usa RUN_API_INTEGRATION=1.")

    base_url = os.getenv("TEST_API_BASE_URL", "http://localhost:8000")
    client = ApiClient(base_url)
    try:
        health = client.call("GET", "/health")
    except Exception as exc:  # pragma: no cover - guard rail
        pytest.fail(f"API no disponible en {base_url}: {exc}")
    if not isinstance(health, dict) or not health.get("ok"):
        pytest.fail(f"Health check invalido en {base_url}: {health}")
    return client


@pytest.fixture
def engine():
    eng = sa.create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def deletion_config() -> DeletionConfig:
    return DeletionConfig(
        dashboard_url=DASHBOARD_URL,
        sender_email=SENDER,
        executor_target=EXECUTOR_URL,
        dead_letter_target=DLQ_URL,
    )


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def service(db, clock, scheduler, email_sender, deletion_config) -> AccountDeletionService:
    return AccountDeletionService(
        store=SqlAccountStore(db),
        scheduler=scheduler,
        notifier=DeletionNotifier(SENDER, email_sender),
        clock=clock,
        config=deletion_config,
    )
