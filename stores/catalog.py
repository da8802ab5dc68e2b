"""
In-memory catalog model.

``Product`` and ``CatalogSnapshot`` are immutable. ``CatalogStore`` owns the
single reference to the published snapshot; ``CatalogSync`` is its only
writer and replaces the reference in one assignment, so a reader that grabs
``store.current()`` once sees one snapshot in full for the whole operation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

PRICE_UNKNOWN = "—"

logger = logging.getLogger("stores.catalog")


@dataclass(frozen=True)
class Product:
    title: str
    handle: str
    tags: Tuple[str, ...] = ()
    price: str = PRICE_UNKNOWN

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "handle": self.handle,
            "tags": list(self.tags),
            "price": self.price,
        }


@dataclass(frozen=True)
class CatalogSnapshot:
    products: Tuple[Product, ...] = ()
    created_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.products)

    def __iter__(self):
        return iter(self.products)

    @property
    def is_empty(self) -> bool:
        return not self.products

    @classmethod
    def build(cls, products: Iterable[Product]) -> "CatalogSnapshot":
        """Freeze *products* into a snapshot, dropping repeated handles."""
        seen = set()
        unique: List[Product] = []
        for product in products:
            if product.handle in seen:
                logger.warning("Duplicate product handle %r dropped from snapshot.", product.handle)
                continue
            seen.add(product.handle)
            unique.append(product)
        return cls(products=tuple(unique))


class CatalogStore:
    """Holds the currently published snapshot."""

    def __init__(self, snapshot: CatalogSnapshot | None = None) -> None:
        self._snapshot = snapshot or CatalogSnapshot()

    def current(self) -> CatalogSnapshot:
        return self._snapshot

    def publish(self, products: Iterable[Product]) -> CatalogSnapshot:
        snapshot = CatalogSnapshot.build(products)
        self._snapshot = snapshot
        logger.info("Published catalog snapshot with %d products.", len(snapshot))
        return snapshot
