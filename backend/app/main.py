import logging
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI, Request
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from dotenv import load_dotenv

# Load environment variables from .env file in project root
project_root = Path(__file__).resolve().parents[2]
env_path = project_root / '.env'
if env_path.exists():
    load_dotenv(dotenv_path=env_path)

from .config import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Import API routers from each domain
from .db.init_db import init_db
from .domains.accounts.api.user_endpoints import router as auth_router
from .domains.listings.api.listing_endpoints import router as listings_router
from .domains.listings.api.upload_endpoints import router as uploads_router
from .domains.chat.api.chat_endpoints import router as chat_router
from .domains.listings.services.upload_service import UPLOADS_MOUNT
from .domains.predictions.queue import create_prediction_queue
from .domains.predictions.scoring_client import ScoringClient
from .shared.exceptions import DomainException, domain_exception_to_http_exception


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        await init_db()
        logger.info("Database tables ensured")

    app.state.prediction_queue = await create_prediction_queue(settings)
    app.state.scoring_client = ScoringClient(settings.ml_base_url, settings.ml_timeout_seconds)
    try:
        yield
    finally:
        await app.state.prediction_queue.close()
        await app.state.scoring_client.close()
        logger.info("Prediction queue and scoring client closed")


app = FastAPI(
    title="Rental Marketplace API",
    description="Rental listings with uploads, chat and asynchronous rent prediction.",
    version="0.1.0",
    lifespan=lifespan
)


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    http_exc = domain_exception_to_http_exception(exc)
    if http_exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=http_exc.status_code, content=http_exc.detail)


# Create a main API router to group all versioned endpoints
api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Auth"])
api_router.include_router(listings_router, prefix="/listings", tags=["Listings"])
api_router.include_router(uploads_router, prefix="/uploads", tags=["Uploads"])
api_router.include_router(chat_router, prefix="/chat", tags=["Chat"])

app.include_router(api_router, prefix="/api/v1")

Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
app.mount(UPLOADS_MOUNT, StaticFiles(directory=settings.upload_dir), name="uploads")


@app.get("/")
async def read_root():
    return {
        "message": "Welcome to the Rental Marketplace API",
        "version": "0.1.0",
        "base_url": "/api/v1",
        "domains": {
            "auth": "Registration, login and identity-token session exchange",
            "listings": "Listing CRUD, photos and rent prediction triggers",
            "uploads": "Standalone image uploads served from /uploads",
            "chat": "Conversations and live messaging over WebSocket"
        },
        "documentation": "/docs"
    }


@app.get("/health")
async def health(request: Request):
    queue = getattr(request.app.state, "prediction_queue", None)
    return {
        "status": "ok",
        "prediction_queue": "available" if queue is not None and queue.available else "unavailable"
    }
