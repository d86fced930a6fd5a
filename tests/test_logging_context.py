from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from sharpcrm.context import correlation_scope
from sharpcrm.core.config import Settings, get_settings
from sharpcrm.crm.api import get_access_services
from sharpcrm.crm.service import build_access_services
from sharpcrm.logging import JsonLogFormatter
from sharpcrm.main import app
from sharpcrm.persistence.memory import InMemoryAttributeStore


def _auth(user_id: str, role: str) -> dict[str, str]:
    settings = get_settings()
    token = jwt.encode({"sub": user_id, "role": role, "tenantId": "T1"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    services = build_access_services(InMemoryAttributeStore(), Settings())
    app.dependency_overrides[get_access_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get("/api/crm/deal/D9", headers={**_auth("r1", "SALES_REP"), "X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "sharpcrm.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_access_decisions_are_logged_with_identity_fields(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    client.get("/api/crm/deal", headers={**_auth("m1", "SALES_MANAGER"), "X-Correlation-Id": "corr-list"})

    decisions = [record for record in caplog.records if record.name == "sharpcrm.access" and record.getMessage() == "access.decision"]
    assert any(
        getattr(record, "operation", None) == "list"
        and getattr(record, "resource", None) == "deal"
        and getattr(record, "user_id", None) == "m1"
        and getattr(record, "role", None) == "SALES_MANAGER"
        and getattr(record, "tenant_id", None) == "T1"
        and getattr(record, "granted", None) is True
        and getattr(record, "count", None) == 0
        and getattr(record, "correlation_id", None) == "corr-list"
        for record in decisions
    )


def test_json_formatter_keeps_known_fields_only() -> None:
    with correlation_scope("fmt-1"):
        record = logging.getLogger("sharpcrm.access").makeRecord(
            "sharpcrm.access",
            logging.INFO,
            __file__,
            1,
            "access.decision",
            (),
            None,
            extra={"operation": "get", "granted": False, "password": "secret"},
        )
        payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "access.decision"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["fields"] == {"operation": "get", "granted": False}
