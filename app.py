import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from billing import StripeGateway
from db import SessionLocal, init_db
from notifications import EmailNotifier
from routers.access import router as access_router
from routers.checkout import router as checkout_router
from routers.deps import get_settings
from routers.webhooks import router as webhook_router
from settings import AppSettings, load_settings

settings = load_settings()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PUBLIC_DIR = os.path.join(BASE_DIR, "public")

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception("Database initialization failed")
    logger.info("Backend running in Stripe %s mode", settings.mode)
    yield


app = FastAPI(title="subscription-webhooks", version="1.0.0", lifespan=lifespan)

app.state.settings = settings
app.state.gateway = StripeGateway(
    settings.stripe.secret_key,
    timeout_seconds=settings.stripe.timeout_seconds,
)
app.state.notifier = EmailNotifier(settings.email, settings.frontend_url)
app.state.session_factory = SessionLocal

if settings.frontend_origin:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )


@app.get("/health")
async def health(current: AppSettings = Depends(get_settings)):
    return {"status": "ok", "mode": current.mode}


app.include_router(webhook_router)
app.include_router(access_router)
app.include_router(checkout_router)

# Mounted last so it never shadows the API routes.
if os.path.isdir(PUBLIC_DIR):
    app.mount("/", StaticFiles(directory=PUBLIC_DIR, html=True), name="public")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=int(os.getenv("PORT", "4242")))
