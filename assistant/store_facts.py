# assistant/store_facts.py

"""
StoreFacts
----------
Small, read-only block of business facts (hours, phone, promo, ...) that is
injected into every prompt. Loaded once at startup; a missing or broken file
gives an all-default block instead of failing startup.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from logging_config import configure_logger

logger = configure_logger("store_facts")

MISSING = "—"

LABELS = {
    "office_hours": "Office hours",
    "phone": "Phone",
    "email": "Email",
    "promo": "Current promo",
    "returns": "Returns",
    "shipping": "Shipping",
    "tracking": "Order tracking",
}


def _load_json(path: Path, default: Optional[dict] = None) -> dict:
    """Read JSON file or return *default* if missing/error."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("%s not found. Using default store facts.", path.name)
        return default or {}
    except (OSError, ValueError) as exc:
        logger.error("Failed to load %s: %s", path.name, exc)
        return default or {}
    if not isinstance(data, dict):
        logger.error("%s must hold a JSON object, got %s.", path.name, type(data).__name__)
        return default or {}
    return data


@dataclass(frozen=True)
class StoreFacts:
    office_hours: str = MISSING
    phone: str = MISSING
    email: str = MISSING
    promo: str = MISSING
    returns: str = MISSING
    shipping: str = MISSING
    tracking: str = MISSING

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "StoreFacts":
        values = {}
        for f in fields(cls):
            raw = data.get(f.name)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            values[f.name] = str(raw).strip()
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            logger.debug("Ignoring unknown store fact keys: %s", sorted(unknown))
        return cls(**values)

    @classmethod
    def load(cls, path: str | Path) -> "StoreFacts":
        facts = cls.from_mapping(_load_json(Path(path), default={}))
        logger.info("Store facts loaded from %s (%d fields set).", path, facts.filled)
        return facts

    @property
    def filled(self) -> int:
        return sum(1 for f in fields(self) if getattr(self, f.name) != MISSING)

    def render(self) -> str:
        """Fixed-field block, always in the same order."""
        return "\n".join(f"{LABELS[f.name]}: {getattr(self, f.name)}" for f in fields(self))
