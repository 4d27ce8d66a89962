import pytest

from app.core.security import create_access_token, decode_token, is_well_formed_undo_token, new_undo_token


def test_new_undo_token_is_64_lowercase_hex():
    token = new_undo_token()
    assert is_well_formed_undo_token(token)
    assert token != new_undo_token()


@pytest.mark.parametrize(
    "token",
    [None, "", "a" * 63, "a" * 65, "A" * 64, "g" * 64, "a" * 64 + "\n", "\n" + "a" * 64, 5],
)
def test_malformed_undo_tokens_are_rejected(token):
    assert is_well_formed_undo_token(token) is False


def test_access_token_carries_email_claim():
    payload = decode_token(create_access_token("u1", email="owner@example.com"))
    assert payload["sub"] == "u1"
    assert payload["type"] == "access"
    assert payload["email"] == "owner@example.com"
