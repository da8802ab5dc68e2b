import pytest

from assistant.chat_handler import FALLBACK_REPLY, ChatRequestHandler, validate_history
from assistant.completion_gateway import CompletionGateway, backends_from_models
from assistant.errors import ConfigurationMissing, ValidationError
from assistant.product_matcher import ProductMatcher
from assistant.prompt_assembler import NO_PRODUCTS, PromptAssembler
from assistant.store_facts import StoreFacts
from conftest import FakeClient, completion_reply, rate_limited, unauthorized
from stores.catalog import CatalogStore

STORE = "https://www.restosupplyhub.com"


def make_handler(behaviours, catalog=None, api_key="test-key", models=("model-a", "model-b")):
    client = FakeClient(behaviours)
    gateway = CompletionGateway(backends_from_models(models), api_key=api_key, client=client)
    assembler = PromptAssembler(StoreFacts(), ProductMatcher(STORE), store_url=STORE)
    return ChatRequestHandler(catalog or CatalogStore(), assembler, gateway), client


@pytest.fixture
def stocked_catalog(cups_and_lids):
    store = CatalogStore()
    store.publish(cups_and_lids.products)
    return store


# ----------------------------------------------------------------------
# validation
# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "messages",
    [
        [],
        None,
        "lids?",
        [{"role": "user"}],
        [{"role": "robot", "content": "hi"}],
        [{"role": "assistant", "content": "How can I help?"}],
        [{"role": "user", "content": "   "}],
        ["lids?"],
    ],
    ids=["empty", "none", "string", "no-content", "bad-role", "no-user", "blank-user", "not-object"],
)
def test_validate_history_rejects(messages):
    with pytest.raises(ValidationError):
        validate_history(messages)


def test_validate_history_keeps_name_and_order():
    history = validate_history(
        [
            {"role": "system", "content": "prior context"},
            {"role": "user", "content": "lids?", "name": "sam"},
        ]
    )
    assert history == [
        {"role": "system", "content": "prior context"},
        {"role": "user", "content": "lids?", "name": "sam"},
    ]


@pytest.mark.asyncio
async def test_invalid_request_makes_no_remote_call():
    handler, client = make_handler({"model-a": completion_reply("unused")})
    with pytest.raises(ValidationError):
        await handler.handle([])
    assert client.completions.calls == []


@pytest.mark.asyncio
async def test_missing_api_key_fails_fast():
    handler, client = make_handler({"model-a": completion_reply("unused")}, api_key=None)
    with pytest.raises(ConfigurationMissing):
        await handler.handle([{"role": "user", "content": "lids?"}])
    assert client.completions.calls == []


# ----------------------------------------------------------------------
# outcomes
# ----------------------------------------------------------------------
@pytest.mark.asyncio
async def test_success_reply_is_returned_verbatim(stocked_catalog):
    handler, client = make_handler({"model-a": completion_reply("  We have **Lid 12oz**.\n")}, catalog=stocked_catalog)

    reply = await handler.handle([{"role": "user", "content": "do you sell lids"}])

    assert reply == "  We have **Lid 12oz**.\n"
    system = client.completions.payloads[0][0]["content"]
    assert "Lid 12oz" in system


@pytest.mark.asyncio
async def test_all_backends_exhausted_degrades_gracefully(stocked_catalog):
    handler, client = make_handler({"model-a": rate_limited(), "model-b": rate_limited()}, catalog=stocked_catalog)
    reply = await handler.handle([{"role": "user", "content": "lids?"}])
    assert reply == FALLBACK_REPLY
    assert client.completions.calls == ["model-a", "model-b"]


@pytest.mark.asyncio
async def test_hard_failure_degrades_without_leaking(stocked_catalog):
    handler, client = make_handler({"model-a": unauthorized("key sk-live-123 revoked"), "model-b": completion_reply("x")},
                                   catalog=stocked_catalog)
    reply = await handler.handle([{"role": "user", "content": "lids?"}])
    assert reply == FALLBACK_REPLY
    assert "sk-live" not in reply
    assert client.completions.calls == ["model-a"]


@pytest.mark.asyncio
async def test_empty_catalog_still_builds_prompt():
    handler, client = make_handler({"model-a": completion_reply("Our catalog is loading, try again soon.")})

    reply = await handler.handle([{"role": "user", "content": "lids?"}])

    assert reply == "Our catalog is loading, try again soon."
    assert NO_PRODUCTS in client.completions.payloads[0][0]["content"]
