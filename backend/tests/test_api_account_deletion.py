from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_clock, get_deletion_notifier
from app.core.config import settings
from app.core.security import create_access_token
from app.db.session import get_db
from app.main import app
from app.services.accounts import PendingDeletion, SqlAccountStore
from app.services.notifications import DeletionNotifier
from tests.testkit import DASHBOARD_URL, DLQ_URL, EXECUTOR_URL, SENDER, seed_user


@pytest.fixture
def client(db, clock, email_sender, monkeypatch):
    monkeypatch.setattr(settings, "PUBLIC_DASHBOARD_URL", DASHBOARD_URL)
    monkeypatch.setattr(settings, "SENDER_EMAIL", SENDER)
    monkeypatch.setattr(settings, "USER_DELETION_EXECUTOR_URL", EXECUTOR_URL)
    monkeypatch.setattr(settings, "USER_DELETION_DLQ_URL", DLQ_URL)

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_deletion_notifier] = lambda: DeletionNotifier(SENDER, email_sender)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _auth(account_id: str, email: str | None = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(account_id, email=email)}"}


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_endpoints_require_bearer_token(client):
    assert client.post("/auth/request-deletion", json={"confirmation_phrase": "Potwierdzam"}).status_code == 401
    assert client.post("/auth/cancel-deletion").status_code == 401
    assert client.get("/auth/deletion-status").status_code == 401
    bad = client.get("/auth/deletion-status", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401


def test_request_status_cancel_over_http(client, db):
    seed_user(db, "u1")
    headers = _auth("u1")

    res = client.post("/auth/request-deletion", json={"confirmationPhrase": "Potwierdzam"}, headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "pending_deletion"
    assert body["deletion_scheduled_at"].startswith("2025-12-12T19:09:00")

    status = client.get("/auth/deletion-status", headers=headers).json()
    assert status["status"] == "pending_deletion"
    assert status["deletion_reason"] == "manual"
    assert status["grace_days"] == 3

    dup = client.post("/auth/request-deletion", json={"confirmation_phrase": "Potwierdzam"}, headers=headers)
    assert dup.status_code == 400
    assert dup.json()["code"] == "DELETION_ALREADY_SCHEDULED"
    assert dup.json()["deletion_scheduled_at"].startswith("2025-12-12T19:09:00")

    cancel = client.post("/auth/cancel-deletion", headers=headers)
    assert cancel.status_code == 200
    assert cancel.json() == {"ok": True, "message": "Deletion cancelled successfully"}

    again = client.post("/auth/cancel-deletion", headers=headers)
    assert again.status_code == 400
    assert again.json()["code"] == "NO_PENDING_DELETION"


def test_request_rejects_missing_or_wrong_phrase(client, db):
    seed_user(db, "u1")

    res = client.post("/auth/request-deletion", headers=_auth("u1"))
    assert res.status_code == 400
    assert res.json()["code"] == "INVALID_CONFIRMATION"
    assert "Potwierdzam" in res.json()["detail"]

    res = client.post("/auth/request-deletion", json={"confirmation_phrase": "tak"}, headers=_auth("u1"))
    assert res.status_code == 400


def test_request_for_unknown_account(client):
    res = client.post("/auth/request-deletion", json={"confirmation_phrase": "Potwierdzam"}, headers=_auth("ghost"))
    assert res.status_code == 404
    assert res.json()["code"] == "USER_NOT_FOUND"


def test_request_uses_email_claim_when_record_has_none(client, db, email_sender):
    seed_user(db, "u1", email=None)

    res = client.post(
        "/auth/request-deletion",
        json={"confirmation_phrase": "Potwierdzam"},
        headers=_auth("u1", email="claims@example.com"),
    )

    assert res.status_code == 200
    assert [to for _, to, _ in email_sender.sent] == ["claims@example.com"]


def test_request_without_email_anywhere(client, db):
    seed_user(db, "u1", email=None)

    res = client.post("/auth/request-deletion", json={"confirmation_phrase": "Potwierdzam"}, headers=_auth("u1"))

    assert res.status_code == 400
    assert res.json()["code"] == "EMAIL_NOT_FOUND"


def test_missing_configuration_is_server_error(client, db, monkeypatch):
    monkeypatch.setattr(settings, "USER_DELETION_EXECUTOR_URL", None)
    seed_user(db, "u1")

    res = client.post("/auth/request-deletion", json={"confirmation_phrase": "Potwierdzam"}, headers=_auth("u1"))

    assert res.status_code == 500
    assert res.json()["code"] == "MISSING_CONFIGURATION"
    assert SqlAccountStore(db).get("u1").status.value == "active"


def test_undo_link_renders_html(client, db, clock):
    seed_user(db, "u1")
    client.post("/auth/request-deletion", json={"confirmation_phrase": "Potwierdzam"}, headers=_auth("u1"))
    token = SqlAccountStore(db).get("u1").deletion.undo_token

    clock.advance(days=1)
    res = client.get(f"/auth/undo-deletion/{token}")

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/html")
    assert "Usunięcie konta zostało anulowane" in res.text
    assert f'href="{DASHBOARD_URL}/login"' in res.text
    assert not SqlAccountStore(db).get("u1").is_pending_deletion

    reused = client.get(f"/auth/undo-deletion/{token}")
    assert reused.status_code == 404
    assert "Link jest nieprawidłowy lub wygasł" in reused.text


def test_undo_link_after_grace_period(client, db, clock):
    seed_user(db, "u1")
    client.post("/auth/request-deletion", json={"confirmation_phrase": "Potwierdzam"}, headers=_auth("u1"))
    token = SqlAccountStore(db).get("u1").deletion.undo_token

    clock.advance(days=3, seconds=1)
    res = client.get(f"/auth/undo-deletion/{token}")

    assert res.status_code == 400
    assert "Nie można przywrócić konta" in res.text
    assert "12 grudnia 2025, 19:09" in res.text


def test_dev_trigger_is_refused_in_production(client, db, monkeypatch):
    monkeypatch.setattr(settings, "ENV", "prod")
    seed_user(db, "u1")

    res = client.post("/dev/users/u1/trigger-deletion", json={"minutesFromNow": 2}, headers=_auth("admin"))

    assert res.status_code == 403
    assert SqlAccountStore(db).get("u1").status.value == "active"


def test_dev_trigger_schedules_deletion(client, db, clock, monkeypatch):
    monkeypatch.setattr(settings, "ENV", "dev")
    seed_user(db, "u1")

    res = client.post("/dev/users/u1/trigger-deletion", json={"minutesFromNow": 2}, headers=_auth("admin"))

    assert res.status_code == 200
    body = res.json()
    assert body["user_id"] == "u1"
    assert body["status"] == "pending_deletion"
    assert body["job_scheduled"] is True
    assert body["deletion_scheduled_at"].startswith("2025-12-09T19:11:00")


@pytest.mark.parametrize("phrase", ["x" * 101, 5, ["Potwierdzam"], {"phrase": "Potwierdzam"}])
def test_any_non_matching_phrase_is_a_confirmation_error(client, db, phrase):
    seed_user(db, "u1")

    res = client.post("/auth/request-deletion", json={"confirmation_phrase": phrase}, headers=_auth("u1"))

    assert res.status_code == 400
    assert res.json()["code"] == "INVALID_CONFIRMATION"


def test_dev_trigger_rejects_zero_minutes(client, db, monkeypatch):
    monkeypatch.setattr(settings, "ENV", "dev")
    seed_user(db, "u1")

    res = client.post("/dev/users/u1/trigger-deletion", json={"minutesFromNow": 0}, headers=_auth("admin"))

    assert res.status_code == 422
    assert SqlAccountStore(db).get("u1").status.value == "active"


def test_login_event_cancels_inactivity_deletion(client, db, clock):
    seed_user(db, "u1")
    seed_user(db, "u2")
    store = SqlAccountStore(db)
    inactivity = PendingDeletion(
        scheduled_at=clock.now() + timedelta(days=30), undo_token="ab" * 32, requested_at=clock.now(), reason="inactivity"
    )
    store.mark_pending_deletion(store.get("u1"), inactivity, clock.now(), action="inactivity_deletion_scheduled")
    client.post("/auth/request-deletion", json={"confirmation_phrase": "Potwierdzam"}, headers=_auth("u2"))

    res = client.post("/auth/login-event", headers=_auth("u1"))
    assert res.status_code == 200
    assert res.json() == {"ok": True, "deletion_cancelled": True}
    assert store.get("u1").status.value == "active"

    manual = client.post("/auth/login-event", headers=_auth("u2"))
    assert manual.json()["deletion_cancelled"] is False
    assert store.get("u2").status.value == "pending_deletion"

    assert client.post("/auth/login-event").status_code == 401
