import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.routers import subscription_router, billing_stripe_router, admin_subscriptions_router
from app.core.config import get_settings
from app.core.database import init_db
from app.core.errors import register_exception_handlers
from app.core.limiter import limiter

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Subscription entitlements, trials and Stripe billing for the meal planner.",
    version="1.0.0",
    debug=settings.DEBUG,
)

# Rate limiting via per-endpoint @limiter.limit() decorators
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)

# CORS configuration
origins = settings.CORS_ORIGINS

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(subscription_router)
app.include_router(billing_stripe_router)
app.include_router(admin_subscriptions_router)


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("%s started", settings.APP_NAME)


@app.get("/")
@limiter.limit("5/minute")
def read_root(request: Request):
    return {"message": f"{settings.APP_NAME} is running."}


@app.get("/health")
def health():
    return {"status": "ok"}
