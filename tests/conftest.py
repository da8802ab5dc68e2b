import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from stores.catalog import CatalogSnapshot, Product

COMPLETIONS_URL = "https://openrouter.ai/api/v1/chat/completions"


# ----------------------------------------------------------------------
# Completion provider fakes
# ----------------------------------------------------------------------
def completion_reply(text):
    """Shape of an OpenAI ChatCompletion as far as the gateway reads it."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def status_error(cls, status, message="boom", body=None):
    request = httpx.Request("POST", COMPLETIONS_URL)
    response = httpx.Response(status, request=request)
    return cls(message, response=response, body=body)


def rate_limited(message="Rate limit exceeded: free-models-per-day"):
    return status_error(openai.RateLimitError, 429, message, body={"code": 429, "message": message})


def unauthorized(message="No auth credentials found"):
    return status_error(openai.AuthenticationError, 401, message, body={"code": 401, "message": message})


class FakeCompletions:
    """Plays back one behaviour per model: a reply object, an exception or a coroutine factory."""

    def __init__(self, behaviours):
        self.behaviours = behaviours
        self.calls = []
        self.payloads = []

    async def create(self, *, model, messages, **kwargs):
        self.calls.append(model)
        self.payloads.append(messages)
        outcome = self.behaviours[model]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome()
        return outcome


class FakeClient:
    def __init__(self, behaviours):
        self.completions = FakeCompletions(behaviours)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self):
        self.closed = True


# ----------------------------------------------------------------------
# Storefront page fakes
# ----------------------------------------------------------------------
def storefront_page(products, has_next, start=0):
    """Build a Storefront ``products`` connection page from (title, handle, amount) tuples."""
    edges = []
    for offset, (title, handle, amount) in enumerate(products):
        variants = [] if amount is None else [{"node": {"price": {"amount": amount, "currencyCode": "USD"}}}]
        edges.append(
            {
                "cursor": f"cursor-{start + offset}",
                "node": {
                    "title": title,
                    "handle": handle,
                    "tags": [handle.split("-")[0]],
                    "variants": {"edges": variants},
                },
            }
        )
    return {"data": {"products": {"edges": edges, "pageInfo": {"hasNextPage": has_next}}}}


def request_cursor(request: httpx.Request):
    return json.loads(request.content)["variables"]["after"]


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------
@pytest.fixture
def cups_and_lids():
    return CatalogSnapshot(
        products=(
            Product(title="Lid 12oz", handle="lid-12oz", tags=("lids",), price="4.99 USD"),
            Product(title="Cup 12oz", handle="cup-12oz", tags=("cups",), price="12.50 USD"),
        )
    )
