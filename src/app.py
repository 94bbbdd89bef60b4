"""Marketplace FastAPI application.

Processes every command synchronously inside the marketplace domain
context. Routes are plain ``def`` endpoints, so each request runs in the
server's thread pool and a slow gateway call only holds its own worker.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

import uuid

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → in-memory providers, events handled synchronously
#   - "production" → PostgreSQL
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from marketplace.domain import marketplace
from marketplace.utils.logging import bind_request_context, clear_request_context

marketplace.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Marketplace API",
    description="Order fulfillment and settlement: carts, orders, payments and deliveries",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_DOMAIN_PREFIXES = ("/carts", "/orders", "/payments", "/deliveries", "/fraud")


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the marketplace domain context and bind request ids for logging."""
    if not request.url.path.startswith(_DOMAIN_PREFIXES):
        # Health check, docs, etc.
        return await call_next(request)

    bind_request_context(
        request_id=request.headers.get("x-request-id") or uuid.uuid4().hex,
        actor_id=request.headers.get("x-actor-id"),
        path=request.url.path,
    )
    try:
        with marketplace.domain_context():
            response = await call_next(request)
    finally:
        clear_request_context()
    return response


# ---------------------------------------------------------------------------
# Routers and error mapping
# ---------------------------------------------------------------------------
from marketplace.api import (  # noqa: E402
    cart_router,
    delivery_router,
    fraud_router,
    order_router,
    payment_router,
    register_marketplace_handlers,
)

register_exception_handlers(app)
register_marketplace_handlers(app)

app.include_router(cart_router)
app.include_router(order_router)
app.include_router(payment_router)
app.include_router(delivery_router)
app.include_router(fraud_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": marketplace.name})
