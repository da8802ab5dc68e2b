import json

import httpx
import pytest

from assistant.errors import ConfigurationMissing
from conftest import storefront_page
from stores.catalog import CatalogStore
from stores.shopify_catalog import CatalogSync
from tools.export_catalog import export_catalog


@pytest.mark.asyncio
async def test_export_writes_compact_digest(tmp_path):
    page = storefront_page([("Lid 12oz", "lid-12oz", "4.99"), ("Napkins", "napkins", None)], False)
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=page)))
    sync = CatalogSync(CatalogStore(), domain="resto.myshopify.com", token="tok", http_client=client)
    out = tmp_path / "catalog.json"

    count = await export_catalog(str(out), sync=sync)

    assert count == 2
    assert json.loads(out.read_text(encoding="utf-8")) == [
        {"title": "Lid 12oz", "handle": "lid-12oz", "tags": ["lid"], "price": "4.99 USD"},
        {"title": "Napkins", "handle": "napkins", "tags": ["napkins"], "price": "—"},
    ]
    assert client.is_closed


@pytest.mark.asyncio
async def test_export_without_credentials_raises(tmp_path):
    sync = CatalogSync(CatalogStore(), domain="", token="")
    with pytest.raises(ConfigurationMissing):
        await export_catalog(str(tmp_path / "catalog.json"), sync=sync)
    assert not (tmp_path / "catalog.json").exists()
