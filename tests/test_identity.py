import base64
import json
import logging

import pytest

from basket_server.identity import ANONYMOUS, Identity, extract_identity
from tests.helpers import bearer, make_token


def _raw_token(payload: bytes) -> str:
    body = base64.urlsafe_b64encode(payload).rstrip(b"=").decode()
    return f"Bearer header.{body}.sig"


@pytest.mark.parametrize("sub", ["1", "12", "123", "user-42"])
def test_sub_claim_becomes_identity(sub):
    # Different lengths exercise every amount of stripped padding.
    assert extract_identity(bearer(sub)) == Identity(sub)


def test_numeric_sub_is_stringified():
    assert extract_identity(bearer(42)) == Identity("42")


@pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer "])
def test_missing_credential_is_anonymous(header):
    assert extract_identity(header) is ANONYMOUS


@pytest.mark.parametrize(
    "header",
    [
        f"bearer {make_token('42')}",
        f"Token {make_token('42')}",
        f"Bearer  {make_token('42')}",
        f"Bearer {make_token('42')} extra",
    ],
)
def test_wrong_scheme_or_spacing_is_anonymous(header):
    assert extract_identity(header) is ANONYMOUS


def test_not_a_jwt_does_not_raise():
    assert extract_identity("Bearer not.a.jwt") is ANONYMOUS


@pytest.mark.parametrize("token", ["onlyonepart", "two.parts", "a.b.c.d"])
def test_token_must_have_three_parts(token):
    assert extract_identity(f"Bearer {token}") is ANONYMOUS


def test_payload_that_is_not_json_is_anonymous():
    assert extract_identity(_raw_token(b"not json at all")) is ANONYMOUS


def test_payload_that_is_not_utf8_is_anonymous():
    assert extract_identity(_raw_token(b"\xff\xfe\xfd")) is ANONYMOUS


def test_payload_that_is_not_an_object_is_anonymous():
    assert extract_identity(_raw_token(json.dumps(["sub", "42"]).encode())) is ANONYMOUS


@pytest.mark.parametrize("claims", [{}, {"sub": ""}, {"sub": 0}, {"sub": None}, {"name": "x"}])
def test_missing_or_falsy_sub_is_anonymous(claims):
    assert extract_identity(_raw_token(json.dumps(claims).encode())) is ANONYMOUS


def test_failures_are_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="basket_server.identity"):
        extract_identity("Bearer not.a.jwt")
    assert "[Identity]" in caplog.text


def test_deeply_nested_payload_is_anonymous():
    # Nesting this deep exhausts the JSON parser's recursion limit.
    assert extract_identity(_raw_token(b"[" * 100000)) is ANONYMOUS
