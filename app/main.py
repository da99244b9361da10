import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import CORS_ORIGINS, LOG_LEVEL
from app.database import init_database, SessionLocal
from app.auth import ensure_admin_exists, router as auth_router

from app.routes import (
    addresses,
    cart,
    categories,
    health,
    option_groups,
    option_values,
    orders,
    payment_methods,
    privacy,
    product_listings,
    products,
    roles,
    variants,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="Storefront API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ── Health & Auth ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(auth_router,                prefix="/api")

# ── Catalogue ──────────────────────────────────────────────────────
app.include_router(products.router,            prefix="/api")
app.include_router(product_listings.router,    prefix="/api")
app.include_router(variants.router,            prefix="/api")
app.include_router(option_groups.router,       prefix="/api")
app.include_router(option_values.router,       prefix="/api")
app.include_router(categories.router,          prefix="/api")

# ── Shopping ───────────────────────────────────────────────────────
app.include_router(addresses.router,           prefix="/api")
app.include_router(cart.router,                prefix="/api")
app.include_router(orders.router,              prefix="/api")
app.include_router(payment_methods.router,     prefix="/api")

# ── Account ────────────────────────────────────────────────────────
app.include_router(privacy.router,             prefix="/api")
app.include_router(roles.router,               prefix="/api")


@app.on_event("startup")
def startup():
    init_database()
    db = SessionLocal()
    try:
        ensure_admin_exists(db)
    finally:
        db.close()
