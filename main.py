import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Literal, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from assistant.chat_handler import ChatRequestHandler
from assistant.completion_gateway import CompletionGateway, backends_from_models
from assistant.errors import ConfigurationMissing, ValidationError
from assistant.product_matcher import ProductMatcher, get_renderer
from assistant.prompt_assembler import PromptAssembler
from assistant.store_facts import StoreFacts
from config import config
from logging_config import configure_logger
from stores.catalog import CatalogStore
from stores.shopify_catalog import CatalogSync

# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------
class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str
    name: Optional[str] = None


class ChatRequest(BaseModel):
    messages: Optional[List[ChatMessage]] = None
    message: Optional[str] = None

    def history(self) -> List[Dict[str, str]]:
        """Multi-turn body wins; a single ``message`` becomes one user turn."""
        if self.messages:
            return [m.model_dump(exclude_none=True) for m in self.messages]
        if self.message and self.message.strip():
            return [{"role": "user", "content": self.message}]
        return []


# ---------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------
logger = configure_logger("main")
logger.info("Main module initialized.")

if config.APP.get("debug"):
    logger.info("Debug mode enabled")


def build_chat_handler(catalog: CatalogStore, facts: StoreFacts) -> ChatRequestHandler:
    """Wire matcher, assembler and gateway from the process configuration."""
    settings = config.ASSISTANT
    matcher = ProductMatcher(
        base_url=settings["store_url"],
        limit=settings["match_limit"],
        renderer=get_renderer(settings["link_style"]),
    )
    assembler = PromptAssembler(
        facts,
        matcher,
        mode=settings["retrieval_mode"],
        full_catalog_limit=settings["full_catalog_limit"],
        query_words=settings["query_words"],
        store_name=settings["store_name"],
        store_url=settings["store_url"],
    )
    gateway = CompletionGateway(
        backends_from_models(config.COMPLETION["models"]),
        api_key=config.COMPLETION["api_key"],
        base_url=config.COMPLETION["base_url"],
        timeout=config.COMPLETION["timeout"],
        max_retries=config.COMPLETION["max_retries"],
        temperature=config.COMPLETION["temperature"],
    )
    return ChatRequestHandler(catalog, assembler, gateway)


# ---------------------------------------------------------------------
# Startup and Shutdown
# ---------------------------------------------------------------------
async def startup(app: FastAPI) -> None:
    logger.info("Starting catalog assistant...")
    facts = StoreFacts.load(config.ASSISTANT["store_info_path"])
    catalog = CatalogStore()
    sync = CatalogSync(catalog)
    # Catalog fills in the background; requests are served right away
    sync.start()

    app.state.catalog = catalog
    app.state.catalog_sync = sync
    app.state.chat_handler = build_chat_handler(catalog, facts)


async def shutdown(app: FastAPI) -> None:
    logger.info("Gracefully shutting down catalog assistant.")
    sync: Optional[CatalogSync] = getattr(app.state, "catalog_sync", None)
    if sync is not None:
        await sync.stop()
    handler: Optional[ChatRequestHandler] = getattr(app.state, "chat_handler", None)
    if handler is not None:
        try:
            await handler.gateway.close()
        except Exception as e:
            logger.error(f"Error while closing completion client: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup(app)
    yield
    await shutdown(app)


# ---------------------------------------------------------------------
# FastAPI App Setup
# ---------------------------------------------------------------------
app = FastAPI(lifespan=lifespan)

allow_all = config.APP["cors_origins"] == ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.APP["cors_origins"],
    allow_credentials=not allow_all,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    logger.info(f"Rejected invalid request body: {problems}")
    return JSONResponse(status_code=400, content={"error": problems or "Invalid request body"})


# ---------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------
def get_chat_handler(request: Request) -> ChatRequestHandler:
    return request.app.state.chat_handler


def get_catalog_store(request: Request) -> CatalogStore:
    return request.app.state.catalog


def get_catalog_sync(request: Request) -> CatalogSync:
    return request.app.state.catalog_sync


# ---------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------
@app.post("/chat")
async def chat(req: ChatRequest, handler: ChatRequestHandler = Depends(get_chat_handler)):
    try:
        reply = await handler.handle(req.history())
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except ConfigurationMissing as e:
        return JSONResponse(status_code=500, content={"error": str(e)})
    except Exception as e:
        logger.exception("🔥 /chat error")
        content = {"error": "Server error"}
        if config.APP.get("debug"):
            content["details"] = str(e)
        return JSONResponse(status_code=500, content=content)
    return {"reply": reply}


@app.get("/health")
async def health_check(
    catalog: CatalogStore = Depends(get_catalog_store),
    sync: CatalogSync = Depends(get_catalog_sync),
):
    snapshot = catalog.current()
    return {
        "status": "active",
        "timestamp": datetime.now().isoformat(),
        "catalog": {
            "configured": sync.configured,
            "products": len(snapshot),
            "snapshot_age_seconds": round(time.time() - snapshot.created_at, 1),
            "syncing": sync.in_flight,
        },
        "retrieval_mode": config.ASSISTANT["retrieval_mode"],
    }


# ---------------------------------------------------------------------
# Main Entry Point
# ---------------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=config.APP["port"],
        reload=False,
        log_level="info",
    )
