"""
Lexical product lookup over a catalog snapshot.

Matching and rendering are kept apart: ``match_products`` only selects
products, while a renderer turns one ``ProductReference`` into a line of
text. Swap the renderer to change link style.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Callable, Dict, List

from stores.catalog import CatalogSnapshot, Product

DEFAULT_LIMIT = 8


@dataclass(frozen=True)
class ProductReference:
    title: str
    price: str
    url: str


Renderer = Callable[[ProductReference], str]


def product_url(base_url: str, handle: str) -> str:
    return f"{base_url.rstrip('/')}/products/{handle}"


def to_reference(product: Product, base_url: str) -> ProductReference:
    return ProductReference(
        title=product.title,
        price=product.price,
        url=product_url(base_url, product.handle),
    )


def render_markdown(ref: ProductReference) -> str:
    # Masked link: the customer sees the title, the URL stays hidden
    return f"• [{ref.title}]({ref.url}) – {ref.price}"


def render_plain(ref: ProductReference) -> str:
    return f"• {ref.title} – {ref.price} – {ref.url}"


def render_html(ref: ProductReference) -> str:
    return (
        f'• <a href="{html.escape(ref.url, quote=True)}">{html.escape(ref.title)}</a>'
        f" – {html.escape(ref.price)}"
    )


RENDERERS: Dict[str, Renderer] = {
    "markdown": render_markdown,
    "plain": render_plain,
    "html": render_html,
}


def get_renderer(style: str) -> Renderer:
    try:
        return RENDERERS[style]
    except KeyError:
        raise ValueError(f"Unknown link style {style!r}; expected one of {sorted(RENDERERS)}") from None


def _matches(product: Product, needle: str) -> bool:
    if needle in product.title.lower():
        return True
    return any(needle in tag.lower() for tag in product.tags)


def match_products(query: str, snapshot: CatalogSnapshot, limit: int = DEFAULT_LIMIT) -> List[Product]:
    """
    Case-insensitive substring match on title or any tag.

    Results keep catalog order and stop at *limit*. A blank query matches
    nothing.
    """
    needle = (query or "").strip().lower()
    if not needle or limit <= 0:
        return []
    found: List[Product] = []
    for product in snapshot.products:
        if _matches(product, needle):
            found.append(product)
            if len(found) >= limit:
                break
    return found


class ProductMatcher:
    """Matches a query and renders the hits as reference lines."""

    def __init__(self, base_url: str, limit: int = DEFAULT_LIMIT, renderer: Renderer = render_markdown) -> None:
        self.base_url = base_url
        self.limit = limit
        self.renderer = renderer

    def match(self, query: str, snapshot: CatalogSnapshot) -> List[Product]:
        return match_products(query, snapshot, self.limit)

    def render(self, products: List[Product]) -> List[str]:
        return [self.renderer(to_reference(p, self.base_url)) for p in products]

    def lines(self, query: str, snapshot: CatalogSnapshot) -> List[str]:
        return self.render(self.match(query, snapshot))
