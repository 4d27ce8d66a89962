from __future__ import annotations

import pytest

from tests.testkit import ApiError, integration_token


def _ensure_active(api, token):
    status = api.call("GET", "/auth/deletion-status", token=token)
    if status["status"] == "pending_deletion":
        api.call("POST", "/auth/cancel-deletion", token=token)


def test_deletion_request_and_cancel_flow(api):
    token = integration_token()
    _ensure_active(api, token)

    with pytest.raises(ApiError) as bad_phrase:
        api.call("POST", "/auth/request-deletion", token=token, body={"confirmation_phrase": "nope"})
    assert bad_phrase.value.status_code == 400

    requested = api.call("POST", "/auth/request-deletion", token=token, body={"confirmation_phrase": "Potwierdzam"})
    assert requested["status"] == "pending_deletion"

    with pytest.raises(ApiError) as dup:
        api.call("POST", "/auth/request-deletion", token=token, body={"confirmation_phrase": "Potwierdzam"})
    assert dup.value.status_code == 400
    assert dup.value.payload["code"] == "DELETION_ALREADY_SCHEDULED"

    status = api.call("GET", "/auth/deletion-status", token=token)
    assert status["status"] == "pending_deletion"
    assert status["deletion_scheduled_at"] is not None

    cancelled = api.call("POST", "/auth/cancel-deletion", token=token)
    assert cancelled["ok"] is True

    with pytest.raises(ApiError) as again:
        api.call("POST", "/auth/cancel-deletion", token=token)
    assert again.value.status_code == 400


def test_undo_with_unknown_token_is_not_found(api):
    with pytest.raises(ApiError) as err:
        api.call("GET", f"/auth/undo-deletion/{'0' * 64}")
    assert err.value.status_code == 404


def test_authenticated_endpoints_reject_anonymous_callers(api):
    with pytest.raises(ApiError) as err:
        api.call("GET", "/auth/deletion-status")
    assert err.value.status_code == 401
