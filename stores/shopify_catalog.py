from __future__ import annotations

import asyncio
import logging
import ssl
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Set, Tuple

import httpx
import truststore

from assistant.errors import CatalogFetchError, ConfigurationMissing
from config import config  # central secrets
from stores.catalog import PRICE_UNKNOWN, CatalogStore, Product

PAGE_SIZE = config.SHOPIFY["page_size"]          # Storefront API max is 250
REFRESH_INTERVAL = config.SHOPIFY["refresh_interval"]
SHOPIFY_API_VERSION = config.SHOPIFY["api_version"]
RATE_LIMIT_RETRY = 1                             # fallback when Retry-After is absent

PRODUCTS_QUERY = """
query ($first:Int!, $after:String) {
  products(first:$first, after:$after) {
    edges {
      cursor
      node {
        title handle tags
        variants(first: 1) { edges { node { price { amount currencyCode } } } }
      }
    }
    pageInfo { hasNextPage }
  }
}
"""

logger = logging.getLogger("stores.shopify_catalog")


def normalize_edge(edge: Dict[str, Any]) -> Optional[Product]:
    """
    Turn one Storefront product edge into a ``Product``.

    Missing variant/price data becomes the "—" sentinel. An edge without a
    handle cannot be addressed and is skipped.
    """
    node = edge.get("node") or {}
    handle = node.get("handle")
    if not handle:
        logger.warning("Skipping product edge without handle: %s", edge)
        return None
    title = node.get("title") or handle

    variant_edges = (node.get("variants") or {}).get("edges") or []
    price = PRICE_UNKNOWN
    if variant_edges:
        price_info = (variant_edges[0].get("node") or {}).get("price") or {}
        amount = price_info.get("amount")
        if amount is not None:
            currency = price_info.get("currencyCode")
            price = f"{amount} {currency}" if currency else str(amount)

    tags = node.get("tags") or ()
    if isinstance(tags, str):
        tags = (tags,)
    return Product(
        title=title,
        handle=handle,
        tags=tuple(t for t in tags if isinstance(t, str)),
        price=price,
    )


def _retry_after(response: httpx.Response) -> float:
    try:
        return float(response.headers.get("Retry-After", RATE_LIMIT_RETRY))
    except ValueError:
        return RATE_LIMIT_RETRY


class CatalogSync:
    """
    Keeps a ``CatalogStore`` filled from the Shopify Storefront GraphQL API.

    One sync walks every page, then publishes the whole list in one step.
    Runs are single-flight: a run requested while another is still going is
    skipped, not queued.
    """

    def __init__(
        self,
        store: CatalogStore,
        domain: Optional[str] = None,
        token: Optional[str] = None,
        page_size: int = PAGE_SIZE,
        refresh_interval: float = REFRESH_INTERVAL,
        api_version: str = SHOPIFY_API_VERSION,
        timeout: float = config.SHOPIFY["timeout"],
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.store = store
        self.domain = domain if domain is not None else config.SHOPIFY_DOMAIN
        self.token = token if token is not None else config.SHOPIFY_TOKEN
        self.page_size = page_size
        self.refresh_interval = refresh_interval
        self.api_version = api_version
        self.timeout = timeout
        self._http = http_client
        self._in_flight = False
        self._ticker: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()

    # -----------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------
    @property
    def configured(self) -> bool:
        return bool(self.domain and self.token)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def endpoint(self) -> str:
        return f"https://{self.domain}/api/{self.api_version}/graphql.json"

    @asynccontextmanager
    async def _client(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        """Yield a shared AsyncClient with redirects + timeout."""
        if self._http is None or self._http.is_closed:
            # Use truststore for SSL verification
            ctx = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            self._http = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                verify=ctx,
            )
        yield self._http

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any], retry: bool = True) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Storefront-Access-Token": self.token,
        }
        try:
            resp = await client.post(self.endpoint, json=payload, headers=headers)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            if code == 429 and retry:
                wait = _retry_after(exc.response)
                logger.warning("Rate-limited by Shopify (sleep %ss)…", wait)
                await asyncio.sleep(wait)
                return await self._post(client, payload, retry=False)
            raise CatalogFetchError(f"HTTP {code} from Shopify: {exc.response.text[:200]}") from exc
        except httpx.RequestError as exc:
            raise CatalogFetchError(f"Network error fetching Shopify products: {exc}") from exc

    # -----------------------------------------------------------------
    # Pagination
    # -----------------------------------------------------------------
    async def fetch_page(
        self,
        client: httpx.AsyncClient,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Product], Optional[str]]:
        """
        Fetch one page of products. Returns (products, next_cursor_or_None).
        """
        payload = {
            "query": PRODUCTS_QUERY,
            "variables": {"first": self.page_size, "after": cursor or None},
        }
        resp = await self._post(client, payload)

        try:
            data = resp.json()
        except ValueError as exc:
            raise CatalogFetchError(f"Shopify returned non-JSON body: {exc}") from exc

        if not isinstance(data, dict):
            raise CatalogFetchError(f"Unexpected products payload: {type(data).__name__}")
        if data.get("errors"):
            raise CatalogFetchError(f"Shopify GraphQL errors: {data['errors']}")

        try:
            connection = data["data"]["products"]
            edges = connection["edges"] or []
            has_next = bool(connection["pageInfo"]["hasNextPage"])
        except (KeyError, TypeError) as exc:
            raise CatalogFetchError(f"Malformed products page: {exc!r}") from exc

        try:
            products = [p for p in (normalize_edge(e) for e in edges) if p is not None]
            next_cursor = edges[-1].get("cursor") if has_next and edges else None
        except (AttributeError, TypeError) as exc:
            raise CatalogFetchError(f"Malformed product edge: {exc!r}") from exc
        if not has_next:
            return products, None

        if not next_cursor:
            raise CatalogFetchError("Shopify reported another page but gave no cursor.")
        return products, next_cursor

    async def fetch_all(self) -> List[Product]:
        """Walk every page and return the full product list (nothing is published)."""
        if not self.configured:
            raise ConfigurationMissing("SHOPIFY_DOMAIN / SHOPIFY_STOREFRONT_TOKEN not set")

        logger.info("⏳ Fetching full catalog from Shopify …")
        products: List[Product] = []
        cursor: Optional[str] = None
        pages = 0

        async with self._client() as cli:
            while True:
                page, cursor = await self.fetch_page(cli, cursor)
                pages += 1
                products.extend(page)
                if cursor is None:
                    break

        logger.info("Fetched %d products in %d page(s).", len(products), pages)
        return products

    # -----------------------------------------------------------------
    # Sync + scheduling
    # -----------------------------------------------------------------
    async def sync_once(self) -> bool:
        """Fetch the whole catalog and publish it. Returns True when a new snapshot was published."""
        if self._in_flight:
            logger.info("Catalog sync already running; skipping this run.")
            return False
        if not self.configured:
            logger.error("❌ Missing SHOPIFY env vars — catalog fetch skipped.")
            return False

        self._in_flight = True
        try:
            products = await self.fetch_all()
        except CatalogFetchError as exc:
            logger.error(
                "Catalog fetch failed; keeping %d cached products: %s",
                len(self.store.current()),
                exc,
            )
            return False
        finally:
            self._in_flight = False

        snapshot = self.store.publish(products)
        logger.info("✅ Catalog loaded (%d products).", len(snapshot))
        return True

    def trigger(self) -> Optional[asyncio.Task]:
        """Launch a sync in the background unless one is already running."""
        if self._in_flight:
            logger.info("Catalog sync still in flight when timer fired; tick skipped.")
            return None
        task = asyncio.create_task(self.sync_once(), name="catalog-sync")
        self._runs.add(task)
        task.add_done_callback(self._on_run_done)
        return task

    def _on_run_done(self, task: asyncio.Task) -> None:
        self._runs.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Catalog sync crashed: %r", task.exception())

    async def _tick_forever(self) -> None:
        try:
            while True:
                self.trigger()
                await asyncio.sleep(self.refresh_interval)
        except asyncio.CancelledError:
            logger.info("Catalog refresh ticker cancelled")
            raise

    def start(self) -> asyncio.Task:
        """Kick off a sync now and every ``refresh_interval`` seconds; never blocks."""
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.create_task(self._tick_forever(), name="catalog-refresh")
            logger.info("Catalog refresh scheduled every %.0f seconds.", self.refresh_interval)
        return self._ticker

    async def stop(self) -> None:
        tasks = [t for t in (self._ticker, *self._runs) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker = None
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()


__all__ = [
    "CatalogSync",
    "normalize_edge",
    "PRODUCTS_QUERY",
]
