import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from streamcoin.core.config import get_settings
from streamcoin.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from streamcoin.core.logging import bind_request_id, configure_logging, get_logger
from streamcoin.db.init import init_db
from streamcoin.deps import get_gateway, get_redis
from streamcoin.routers import calls, livestreams, recharge, rewards, users

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="streamcoin API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(users.router, prefix="/api", tags=["users"])
app.include_router(recharge.router, prefix="/api/recharge", tags=["recharge"])
app.include_router(calls.router, prefix="/api/calls", tags=["calls"])
app.include_router(livestreams.router, prefix="/api/livestreams", tags=["livestreams"])
app.include_router(rewards.router, prefix="/api/rewards", tags=["rewards"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    await init_db()
    log.info("startup", msg="DB connected", transactions=settings.mongodb_transactions)


@app.on_event("shutdown")
async def shutdown():
    if get_gateway.cache_info().currsize:
        await get_gateway().aclose()
    if get_redis.cache_info().currsize:
        await get_redis().aclose()


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
