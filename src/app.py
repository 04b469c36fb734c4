"""Fulfillment FastAPI application.

Web server that processes fulfillment commands synchronously via HTTP.
Each request is wrapped in the fulfillment domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fulfillment.domain import fulfillment  # noqa: E402

fulfillment.init()

_DOMAIN_PREFIXES = ("/orders", "/merchants", "/lifecycle", "/pricing", "/settings")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Fulfillment API",
    description="Marketplace order fulfillment: pricing, merchant assignment and item lifecycle",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the fulfillment domain context for domain routes."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        with fulfillment.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from fulfillment.api.errors import register_error_handlers  # noqa: E402
from fulfillment.api.routes import (  # noqa: E402
    lifecycle_router,
    merchant_router,
    order_router,
    pricing_router,
    settings_router,
)

register_error_handlers(app)
app.include_router(order_router)
app.include_router(merchant_router)
app.include_router(lifecycle_router)
app.include_router(pricing_router)
app.include_router(settings_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domains": {"fulfillment": {"name": fulfillment.name}}})
