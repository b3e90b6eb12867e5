from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel

from .auth import Identity, create_token, decode_token
from .config import settings
from .db import SessionLocal, engine
from .order_store import SqlOrderStore, create_all
from .ordering.brain import ConversationEngine
from .ordering.catalog import CatalogItem, MatchCandidate, MatchProfile, load_weights, rank_catalog
from .ordering.catalog_store import JsonAddressSource, JsonCatalogSource
from .ordering.errors import CatalogLoadError
from .ordering.sessions import SessionStore

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logger = logging.getLogger(__name__)

create_all(engine)

# -------------------
# Wiring
# -------------------
weights = load_weights(settings.match_weights_path)
catalog_source = JsonCatalogSource(settings.catalog_dir)
address_source = JsonAddressSource(settings.catalog_dir)
order_store = SqlOrderStore(SessionLocal)
sessions = SessionStore(idle_seconds=settings.session_idle_seconds)
conversation = ConversationEngine(
    sessions=sessions,
    catalog=catalog_source,
    addresses=address_source,
    orders=order_store,
    weights=weights,
    max_message_length=settings.max_message_length,
)


async def _sweep_forever(store: SessionStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        evicted = await asyncio.to_thread(store.sweep)
        if evicted:
            logger.info("Sweep evicted %d idle sessions", len(evicted))


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(_sweep_forever(sessions, settings.sweep_interval_seconds))
    try:
        yield
    finally:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


app = FastAPI(
    title="Order Desk API",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    lifespan=lifespan,
)


# -------------------
# Schemas
# -------------------
class ChatIn(BaseModel):
    message: str


class ChatOut(BaseModel):
    replies: List[str]
    step: Optional[str] = None  # None once the session ended


class TokenIn(BaseModel):
    identity: str
    name: str


# -------------------
# Dependencies
# -------------------
def get_conversation() -> ConversationEngine:
    return conversation


def get_catalog_source() -> JsonCatalogSource:
    return catalog_source


def get_address_source() -> JsonAddressSource:
    return address_source


def require_identity(authorization: str | None = Header(default=None)) -> Identity:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = authorization.split(" ", 1)[1].strip()
    who = decode_token(token)
    if not who:
        raise HTTPException(status_code=401, detail="Invalid token")
    return who


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    if not settings.api_key:
        raise HTTPException(status_code=403, detail="API key not configured")
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Bad API key")


# -------------------
# Health
# -------------------
@app.get("/")
def root():
    return {"ok": True, "service": "orderdesk"}


# -------------------
# Auth
# -------------------
@app.post("/auth/token", dependencies=[Depends(require_api_key)])
def issue_token(payload: TokenIn):
    identity = payload.identity.strip()
    if not identity:
        raise HTTPException(status_code=400, detail="identity is required")
    return {"token": create_token(identity, payload.name.strip() or identity)}


# -------------------
# Chat
# -------------------
@app.post("/chat", response_model=ChatOut)
def chat(
    payload: ChatIn,
    who: Identity = Depends(require_identity),
    engine_: ConversationEngine = Depends(get_conversation),
):
    reply = engine_.handle_message(who.identity, payload.message, who.name)
    return ChatOut(replies=reply.messages, step=reply.step.value if reply.step else None)


# -------------------
# Catalog
# -------------------
@app.get("/catalog", response_model=List[CatalogItem])
def catalog(source: JsonCatalogSource = Depends(get_catalog_source)):
    try:
        return source.list()
    except CatalogLoadError as e:
        logger.error("Catalog unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Catalog unavailable")


@app.get("/catalog/search", response_model=List[MatchCandidate])
def catalog_search(q: str = "", source: JsonCatalogSource = Depends(get_catalog_source)):
    try:
        items = source.list()
    except CatalogLoadError as e:
        logger.error("Catalog unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Catalog unavailable")
    return rank_catalog(q, items, MatchProfile.SEARCH, weights)


@app.post("/catalog/reload", dependencies=[Depends(require_api_key)])
def catalog_reload(
    source: JsonCatalogSource = Depends(get_catalog_source),
    addresses: JsonAddressSource = Depends(get_address_source),
):
    try:
        n_items = source.reload()
        n_addresses = addresses.reload()
    except CatalogLoadError as e:
        logger.error("Catalog reload failed: %s", e)
        raise HTTPException(status_code=503, detail=str(e))
    return {"ok": True, "items": n_items, "addresses": n_addresses}
