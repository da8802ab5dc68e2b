from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

from assistant.completion_gateway import CompletionGateway
from assistant.errors import ConfigurationMissing, ValidationError
from assistant.prompt_assembler import PromptAssembler
from logging_config import configure_logger
from stores.catalog import CatalogStore

logger = configure_logger("chat_handler")

ROLES = frozenset({"system", "user", "assistant"})
FALLBACK_REPLY = "Sorry, I couldn't get an answer right now."


def validate_history(messages: Any) -> List[Dict[str, Any]]:
    """Check the caller's history and return it as plain dicts."""
    if not isinstance(messages, (list, tuple)) or not messages:
        raise ValidationError("No message")

    history: List[Dict[str, Any]] = []
    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise ValidationError(f"messages[{index}] must be an object")
        role = message.get("role")
        content = message.get("content")
        if role not in ROLES:
            raise ValidationError(f"messages[{index}].role must be one of {sorted(ROLES)}")
        if not isinstance(content, str):
            raise ValidationError(f"messages[{index}].content must be a string")
        entry = {"role": role, "content": content}
        if message.get("name"):
            entry["name"] = message["name"]
        history.append(entry)

    if not any(m["role"] == "user" and m["content"].strip() for m in history):
        raise ValidationError("No user message")
    return history


class ChatRequestHandler:
    """Validates a chat request, builds the prompt and asks the gateway."""

    def __init__(self, catalog: CatalogStore, assembler: PromptAssembler, gateway: CompletionGateway) -> None:
        self.catalog = catalog
        self.assembler = assembler
        self.gateway = gateway

    async def handle(self, messages: Sequence[Mapping[str, Any]]) -> str:
        history = validate_history(messages)
        if not self.gateway.configured:
            logger.error("Completion API key missing; refusing /chat before any remote call.")
            raise ConfigurationMissing("Missing completion provider key")

        # One snapshot for the whole request, even if a sync publishes meanwhile
        snapshot = self.catalog.current()
        if snapshot.is_empty:
            logger.warning("Catalog snapshot is empty; answering without products.")

        payload = self.assembler.assemble(history, snapshot)
        result = await self.gateway.complete(payload)

        if result.ok:
            return result.reply
        logger.error(
            "Degraded reply (%s): %s | attempts=%s",
            result.status.value,
            result.reason,
            [(a.backend, a.outcome.value) for a in result.attempts],
        )
        return FALLBACK_REPLY
