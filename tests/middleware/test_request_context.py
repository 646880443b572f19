"""Tests for the request context middleware.

Every response carries an X-Request-ID (generated or echoed), and the
completion log line never includes the query string.
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_oversized_request_id_is_replaced(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "x" * 500})
    uuid.UUID(resp.headers["x-request-id"])


def test_request_id_present_on_oauth_errors(client: TestClient) -> None:
    resp = client.get("/oauth/userinfo")  # no bearer → 401
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_completion_line_omits_query_string(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO):
        client.get("/oauth/authorize", params={"client_id": "x", "state": "s3cr3t"})

    lines = [
        r
        for r in caplog.records
        if r.name == "tenant_idp.middleware.request_context"
    ]
    assert lines
    assert all("s3cr3t" not in r.getMessage() for r in lines)
    assert lines[-1].path == "/oauth/authorize"  # type: ignore[attr-defined]
