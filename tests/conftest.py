# tests/conftest.py
import os

# In-memory database and cheap hashes for the whole test session.
# Must be set before the service modules are imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ.setdefault("REGISTRY_API_KEY", "test-key")

import httpx
import pytest
from fastapi.testclient import TestClient

from company_service.db import Base, engine
from company_service.main import app, get_registry_client
from company_service.registry_client import RegistryClient

REGISTRY_URL = "https://registry.test"

VALID_TAX_ID = "47960950000121"
UNKNOWN_TAX_ID = "00000000000000"


class FakeRegistry:
    """
    Answers registry lookups from a dict {tax_id: (status_code, json_body)}.
    Records every request it receives. Unknown tax ids get a 404.
    """

    def __init__(self):
        self.responses = {}
        self.requests = []
        self.fail_with = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        tax_id = request.url.path.rsplit("/", 1)[-1]
        status_code, body = self.responses.get(tax_id, (404, {"message": "Not Found"}))
        if isinstance(body, (str, bytes)):
            return httpx.Response(status_code, content=body)
        return httpx.Response(status_code, json=body)

    def register(self, tax_id: str, active: bool = True, name: str = "EMPRESA TESTE LTDA"):
        self.responses[tax_id] = (200, {
            "taxId": tax_id,
            "active": active,
            "company": {"name": name, "status": {"id": 2 if active else 8, "text": "Ativa" if active else "Baixada"}},
        })


@pytest.fixture
def registry():
    fake = FakeRegistry()
    fake.register(VALID_TAX_ID)
    return fake


@pytest.fixture
def registry_client(registry):
    return RegistryClient(REGISTRY_URL, "test-key", transport=httpx.MockTransport(registry.handler))


@pytest.fixture
def client(registry_client):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_registry_client] = lambda: registry_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def company_payload():
    return {
        "tax_id": VALID_TAX_ID,
        "legal_name": "Price Whisper Tecnologia LTDA",
        "trade_name": "Price Whisper",
    }


@pytest.fixture
def created_company(client, company_payload) -> dict:
    r = client.post("/companies", json=company_payload)
    assert r.status_code == 201, r.text
    return r.json()


def user_payload(company_id: int, username: str = "jsilva") -> dict:
    return {
        "name": "João Silva",
        "username": username,
        "password": "s3cret-pass",
        "company_id": company_id,
    }
