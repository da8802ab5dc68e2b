"""Fetch ALL products from the Storefront API and save a compact digest.

Usage: python -m tools.export_catalog [output.json]
"""

import asyncio
import json
import sys

import aiofiles

from assistant.errors import AssistantError
from logging_config import configure_logger
from stores.catalog import CatalogSnapshot, CatalogStore
from stores.shopify_catalog import CatalogSync

logger = configure_logger("export_catalog")

DEFAULT_OUTPUT = "catalog.json"


async def export_catalog(path: str = DEFAULT_OUTPUT, sync: CatalogSync | None = None) -> int:
    sync = sync or CatalogSync(CatalogStore())
    try:
        products = await sync.fetch_all()
    finally:
        await sync.stop()

    snapshot = CatalogSnapshot.build(products)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(json.dumps([p.to_dict() for p in snapshot], indent=2, ensure_ascii=False))
    logger.info(f"✅  Saved {len(snapshot)} products to {path}")
    return len(snapshot)


def main(argv: list[str]) -> int:
    path = argv[1] if len(argv) > 1 else DEFAULT_OUTPUT
    try:
        asyncio.run(export_catalog(path))
    except AssistantError as e:
        logger.error(f"Catalog export failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
