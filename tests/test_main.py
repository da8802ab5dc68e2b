import pytest
from fastapi.testclient import TestClient

from assistant.chat_handler import FALLBACK_REPLY, ChatRequestHandler
from assistant.completion_gateway import CompletionGateway, backends_from_models
from assistant.product_matcher import ProductMatcher
from assistant.prompt_assembler import NO_PRODUCTS, PromptAssembler
from assistant.store_facts import StoreFacts
from config import config
from conftest import FakeClient, completion_reply, rate_limited
from main import app, get_catalog_store, get_catalog_sync, get_chat_handler
from stores.catalog import CatalogStore
from stores.shopify_catalog import CatalogSync

STORE = "https://www.restosupplyhub.com"


def install_handler(behaviours, catalog=None, api_key="test-key"):
    fake = FakeClient(behaviours)
    gateway = CompletionGateway(backends_from_models(["model-a", "model-b"]), api_key=api_key, client=fake)
    assembler = PromptAssembler(StoreFacts(), ProductMatcher(STORE), store_url=STORE)
    handler = ChatRequestHandler(catalog or CatalogStore(), assembler, gateway)
    app.dependency_overrides[get_chat_handler] = lambda: handler
    return fake


@pytest.fixture
def client():
    # lifespan is not entered: no background catalog sync during these tests
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_chat_returns_reply(client, cups_and_lids):
    catalog = CatalogStore()
    catalog.publish(cups_and_lids.products)
    fake = install_handler({"model-a": completion_reply("Yes, we carry 12oz lids.")}, catalog=catalog)

    resp = client.post("/chat", json={"messages": [{"role": "user", "content": "do you have lids"}]})

    assert resp.status_code == 200
    assert resp.json() == {"reply": "Yes, we carry 12oz lids."}
    assert fake.completions.payloads[0][1] == {"role": "user", "content": "do you have lids"}


def test_single_message_body_is_normalized(client):
    fake = install_handler({"model-a": completion_reply("Hello!")})

    resp = client.post("/chat", json={"message": "hi there"})

    assert resp.status_code == 200
    assert fake.completions.payloads[0][1:] == [{"role": "user", "content": "hi there"}]


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"messages": []},
        {"message": ""},
        {"messages": [{"role": "robot", "content": "hi"}]},
        {"messages": [{"role": "user"}]},
    ],
    ids=["empty-body", "empty-history", "empty-message", "bad-role", "missing-content"],
)
def test_invalid_body_is_400(client, body):
    fake = install_handler({"model-a": completion_reply("unused")})

    resp = client.post("/chat", json=body)

    assert resp.status_code == 400
    assert "error" in resp.json()
    assert fake.completions.calls == []


def test_missing_provider_key_is_500(client):
    fake = install_handler({"model-a": completion_reply("unused")}, api_key=None)

    resp = client.post("/chat", json={"message": "lids?"})

    assert resp.status_code == 500
    assert "error" in resp.json()
    assert fake.completions.calls == []


def test_all_backends_exhausted_still_200(client):
    install_handler({"model-a": rate_limited(), "model-b": rate_limited()})

    resp = client.post("/chat", json={"message": "lids?"})

    assert resp.status_code == 200
    assert resp.json() == {"reply": FALLBACK_REPLY}


def test_unconfigured_catalog_still_answers(client):
    fake = install_handler({"model-a": completion_reply("Sorry, no products are listed yet.")})

    resp = client.post("/chat", json={"message": "lids?"})

    assert resp.status_code == 200
    assert resp.json()["reply"]
    assert NO_PRODUCTS in fake.completions.payloads[0][0]["content"]


def test_unexpected_error_is_generic_500(client, monkeypatch):
    monkeypatch.setitem(config.APP, "debug", False)

    class Broken:
        async def handle(self, messages):
            raise RuntimeError("secret internals")

    app.dependency_overrides[get_chat_handler] = lambda: Broken()

    resp = client.post("/chat", json={"message": "lids?"})

    assert resp.status_code == 500
    assert resp.json()["error"] == "Server error"
    assert "secret internals" not in resp.json().get("details", "")


def test_health_reports_catalog(client, cups_and_lids):
    catalog = CatalogStore()
    catalog.publish(cups_and_lids.products)
    sync = CatalogSync(catalog, domain="", token="")
    app.dependency_overrides[get_catalog_store] = lambda: catalog
    app.dependency_overrides[get_catalog_sync] = lambda: sync

    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "active"
    assert body["catalog"]["products"] == 2
    assert body["catalog"]["configured"] is False
    assert body["catalog"]["syncing"] is False
