# main.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi_limiter import FastAPILimiter
from starlette.middleware.cors import CORSMiddleware
import routes
from config.cache import close_redis, get_redis
from config.settings import settings
from core.context import build_context
from util.constants import SERVICE_NAME, SERVICE_VERSION
from util.enums import Color, Environment
from util.errors import ConfigurationError
from util.logger import init_logger

logger = logging.getLogger(__name__)


async def _client_key(request: Request) -> str:
    """Rate-limit identity; honours X-Forwarded-For only behind a trusted proxy."""
    if settings.TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def _startup(app: FastAPI) -> None:
    redis = await get_redis()
    if settings.RATE_LIMIT_ENABLED:
        await FastAPILimiter.init(redis, identifier=_client_key)
    ctx = build_context(redis, settings)
    app.state.context = ctx
    logger.info(
        "app.ready env=%s buffer=%d pool=%d deadline=%s late_failure=%s",
        settings.APP_ENV,
        ctx.buffers.buffer_size,
        ctx.buffers.capacity,
        ctx.options.deadline,
        ctx.options.late_failure_policy.value,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_logger()
    print(f"{Color.GREEN}{SERVICE_NAME} v{SERVICE_VERSION} starting...{Color.RESET}")
    try:
        await _startup(app)
    except ConfigurationError as e:
        print(f"{Color.RED}Media tools misconfigured: {e}{Color.RESET}")
        raise
    except Exception as e:
        print(f"{Color.RED}Startup failed (redis={settings.REDIS_URL}): {e}{Color.RESET}")
        raise
    print(f"{Color.BLUE}Listening for jobs{Color.RESET}")

    try:
        yield
    finally:
        # Live pipelines are owned by their responses and close with them.
        try:
            await close_redis()
        except Exception as e:
            logger.error("redis.close.error err=%s", e)
        print(f"{Color.RED}Server Shutdown{Color.RESET}")


app: FastAPI = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.ALLOWED_ORIGIN],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "Origin"],
    # Scripts can only read the download filename when it is exposed
    expose_headers=["Content-Disposition"],
)


@app.exception_handler(429)
async def too_many_requests(request: Request, exc):
    wait = settings.RATE_LIMIT_SECONDS
    return JSONResponse(
        status_code=429,
        content={
            "ok": False,
            "error": "rate_limited",
            "message": f"Too many requests. Try again in {wait}s.",
        },
        headers={"Retry-After": str(wait)},
    )


routes.register_routes(app)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_ENV == Environment.DEV,
    )
