import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blogsocial.cache import cache
from blogsocial.config import settings
from blogsocial.errors import AppError, app_error_handler
from blogsocial.middleware import TimingMiddleware
from blogsocial.routers import articles, comments, reports, social, tags, users

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The article list cache is optional; connect() disables it on failure.
    await cache.connect()
    logger.info("Started in %s mode (cache %s)", settings.APP_ENV, "on" if cache.enabled else "off")
    yield
    await cache.disconnect()


app = FastAPI(
    title="Blog Social API",
    description="Social blogging API: articles, threaded comments, follows, likes and bookmarks",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(articles.router)
app.include_router(comments.router)
app.include_router(reports.router)
app.include_router(social.router)
app.include_router(tags.router)
app.include_router(users.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "cache": cache.stats}
