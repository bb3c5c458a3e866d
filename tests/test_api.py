"""
Tests for the HTTP/JSON binding.
"""

from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from keystore import KeyHierarchyService, StaticAccessControl
from keystore.api import create_app

from conftest import GRANTS, TOKEN


def b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as client:
        yield client


def _wrap(client, plain: bytes, token: str = TOKEN, table: str = "orders", column: str = "ssn"):
    return client.post(
        "/wrap",
        json={"token": token, "table": table, "column": column, "plainKey": b64(plain)},
    )


def _unwrap(client, wrapped: str, token: str = TOKEN, table: str = "orders", column: str = "ssn"):
    return client.post(
        "/unwrap",
        json={"token": token, "table": table, "column": column, "wrappedKey": wrapped},
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_wrap_and_unwrap(client):
    wrapped = _wrap(client, b"123-45-6789")
    assert wrapped.status_code == 200
    body = wrapped.json()
    assert body["code"] == 0
    assert "error" not in body

    unwrapped = _unwrap(client, body["wrappedKey"])
    assert unwrapped.status_code == 200
    assert unwrapped.json() == {"code": 0, "plainKey": b64(b"123-45-6789")}


def test_unauthenticated_is_business_failure(client):
    response = _wrap(client, b"secret", token="bogus")

    assert response.status_code == 200
    assert response.json() == {"code": -1, "error": "cannot authenticate the token"}


def test_forbidden_is_business_failure(client):
    response = _wrap(client, b"secret", column="address")

    assert response.status_code == 200
    assert response.json() == {
        "code": -1,
        "error": "do not have permission to access column address in table orders",
    }


def test_unregistered_table(client):
    response = _unwrap(client, b64(b"x" * 60))

    assert response.status_code == 200
    assert response.json() == {"code": -1, "error": "table orders has not been registered yet"}


def test_tampered_wrapped_key(client):
    wrapped = bytearray(base64.b64decode(_wrap(client, b"secret").json()["wrappedKey"]))
    wrapped[20] ^= 0x01

    response = _unwrap(client, b64(bytes(wrapped)))
    assert response.status_code == 200
    assert response.json() == {"code": -1, "error": "provided data key cannot be unwrapped"}


@pytest.mark.parametrize(
    "body",
    [
        {"token": TOKEN, "table": "orders", "column": "ssn"},
        {"token": TOKEN, "table": "orders", "column": "ssn", "plainKey": "***"},
        {"token": TOKEN, "table": "orders", "column": "ssn", "plainKey": ""},
        {"token": TOKEN, "table": "orders", "column": "ssn", "plainKey": 12},
        {"token": TOKEN, "table": "", "column": "ssn", "plainKey": b64(b"k")},
    ],
)
def test_malformed_body(client, registry, body):
    response = client.post("/wrap", json=body)

    assert response.status_code == 400
    assert response.text == "bad request"
    assert registry.total_calls == 0


def test_internal_faults_are_generic(client, root_keys, registry):
    root_keys.fail = True
    kms_down = _wrap(client, b"secret")

    root_keys.fail = False
    registry.fail = True
    db_down = _wrap(client, b"secret")

    for response in (kms_down, db_down):
        assert response.status_code == 500
        assert response.text == "internal error"


def test_foreign_collaborator_errors_are_generic(client, root_keys, registry):
    root_keys.fail = True
    root_keys.error = ConnectionError("kms.internal:443 refused")
    kms_down = _wrap(client, b"secret")

    root_keys.fail = False
    registry.fail = True
    registry.error = ConnectionError("db.internal:5432 refused")
    db_down = _wrap(client, b"secret")

    for response in (kms_down, db_down):
        assert response.status_code == 500
        assert response.text == "internal error"


class BrokenAccessControl(StaticAccessControl):
    async def authenticate(self, token: str) -> bool:
        raise ConnectionError("auth.internal:443 refused")


def test_unhandled_error_is_generic(root_keys, registry, crypto):
    service = KeyHierarchyService(
        access=BrokenAccessControl(GRANTS),
        root_keys=root_keys,
        registry=registry,
        crypto=crypto,
    )

    with TestClient(create_app(service), raise_server_exceptions=False) as client:
        response = _wrap(client, b"secret")

    assert response.status_code == 500
    assert response.text == "internal error"
    assert registry.total_calls == 0
