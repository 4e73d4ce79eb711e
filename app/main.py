from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
import httpx
from app.core.config import settings
from app.core.firebase import init_firebase
from app.core.database import engine, Base
from app.core.exceptions import AppError, app_error_handler, database_error_handler
from app.core.rate_limiter import limiter
from app.api.v1.router import api_router
from app.services.analytics_service import AnalyticsService
from app.services.generation_service import AnswerGenerator
from app import models  # noqa: F401  registers tables on Base.metadata
import logging
from importlib import metadata

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def get_version() -> str:
    """Installed distribution version, as declared in pyproject.toml."""
    try:
        return metadata.version("schoolai-backend")
    except metadata.PackageNotFoundError:
        logger.warning("get_version: schoolai-backend is not installed, reporting 0.0.0")
        return "0.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build process-wide collaborators once and share them through app.state."""
    logger.info("lifespan: Startup")
    init_firebase()
    Base.metadata.create_all(bind=engine)

    http_client = httpx.AsyncClient(follow_redirects=False)
    analytics = AnalyticsService()
    app.state.analytics = analytics
    app.state.answer_generator = AnswerGenerator(client=http_client, analytics=analytics)
    try:
        yield
    finally:
        await http_client.aclose()
        logger.info("lifespan: Shutdown")


app = FastAPI(
    title="SchoolAI API",
    version=get_version(),
    debug=settings.debug,
    redirect_slashes=False,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(SQLAlchemyError, database_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.api_v1_str)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
