import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import engine
from app.errors import ArticleAPIError
from app.logging_config import setup_logging
from app.middleware import TimingMiddleware
from app.routers import articles

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger.info("Article API starting (env=%s)", settings.APP_ENV)
    yield
    # Shutdown
    await engine.dispose()

app = FastAPI(
    title="Article API",
    description="CRUD service for articles with ownership-guarded mutations",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ArticleAPIError)
async def article_api_error_handler(request: Request, exc: ArticleAPIError):
    message = exc.message
    if exc.status_code >= 500:
        logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
        message = ArticleAPIError.default_message
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "data": None,
            "error": {"status": exc.status_code, "name": exc.error_name, "message": message},
        },
    )

# Routers
app.include_router(articles.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
