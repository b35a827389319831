"""
Quill Commerce Backend
FastAPI application entry point

- Capability-based authorization (owner, role and per-user grants)
- Multi-provider payments (Stripe, PayPal, Amazon Pay) with test mode
- Rate limiting with SlowAPI
- Error sanitization middleware
- Health endpoint with DB ping
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from app.api.routes import articles, auth, capabilities, cart, comments, orders, payments, products
from app.core.config import settings
from app.core.database import AsyncSessionLocal, dispose_engine, get_db_session
from app.core.error_handler import ErrorSanitizationMiddleware, quill_error_handler
from app.core.exceptions import QuillBaseError
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.core.redis_client import close_redis
from app.modules.payments.providers import close_providers
from app.services.capability_service import CapabilityService
from app.services.payment_service import PaymentService

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def seed_capability_catalog():
    """Upsert the built-in capabilities. Failure is logged, startup continues."""
    try:
        async with get_db_session() as db:
            count = await CapabilityService(db).seed_capabilities()
        logger.info(f"Capability catalog seeded ({count} entries)")
    except Exception as e:
        logger.error(f"Capability seeding failed: {type(e).__name__}: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await seed_capability_catalog()

    async with AsyncSessionLocal() as db:
        PaymentService(db).log_provider_status()

    yield

    await close_providers()
    await close_redis()
    await dispose_engine()
    logger.info("Payment providers, Redis and database connections closed")


app = FastAPI(
    lifespan=lifespan,
    title="Quill Commerce API",
    description="""
## Quill Commerce API

Storefront and content backend with capability-based access control.

### Features
- **Authentication**: JWT bearer tokens with refresh rotation
- **Capabilities**: Role and per-user grants, owner holds everything
- **Cart & Orders**: Guest carts by session id, merged at login
- **Payments**: Stripe, PayPal and Amazon Pay with signed webhooks
- **Articles**: Own/any edit and delete permissions
- **Comments**: Posted live, moderated after, reviewed by moderators

### Rate Limits
- Auth endpoints: 5 requests/minute
- Checkout: 10 requests/minute
- General: 100 requests/minute
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Authentication", "description": "Registration, login and token management"},
        {"name": "Capabilities", "description": "Capability catalog and grants"},
        {"name": "Products", "description": "Product catalog"},
        {"name": "Cart", "description": "Shopping cart operations"},
        {"name": "Orders", "description": "Order creation and management"},
        {"name": "Payments", "description": "Payment intents, captures, refunds and webhooks"},
        {"name": "Articles", "description": "Content articles"},
        {"name": "Comments", "description": "Article comments and moderation"},
    ],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Domain errors carry their own HTTP status
app.add_exception_handler(QuillBaseError, quill_error_handler)

# Error sanitization (catches unhandled exceptions)
app.add_middleware(ErrorSanitizationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(capabilities.router, prefix="/api/capabilities", tags=["Capabilities"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(articles.router, prefix="/api/articles", tags=["Articles"])
app.include_router(comments.router, prefix="/api/comments", tags=["Comments"])


@app.get("/", tags=["Health"])
async def root():
    return {
        "message": "Quill Commerce API",
        "status": "operational"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with an actual DB ping.
    Returns 503 if database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
