import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campusnet.config import CORS_ORIGINS, LOG_LEVEL
from campusnet.database import Base, engine
from campusnet.errors import ForumError
from campusnet.routes import auth, forum_routes, notification_routes
from campusnet.search.embeddings import EmbeddingClient
from campusnet.search.weaviate import WeaviateIndex

# make sure every table is registered on Base.metadata before create_all
from campusnet.models import forum_model, notification_model, user_model  # noqa: F401

# 🔒 Rate limiting setup
from campusnet.limiter import limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Campusnet API")

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# Shared store clients; replaced through dependency overrides in tests
app.state.vector_index = WeaviateIndex.from_settings()
app.state.embedder = EmbeddingClient.from_settings()


# ✅ Uniform {"msg": ...} error envelope
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"msg": "Too many requests. Please slow down."}
    )


@app.exception_handler(ForumError)
async def forum_error_handler(request: Request, exc: ForumError):
    return JSONResponse(status_code=exc.status_code, content={"msg": exc.msg})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    msg = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content={"msg": msg}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
    return JSONResponse(
        status_code=422,
        content={"msg": f"Invalid {field}: {first.get('msg', 'validation failed')}"},
    )


# ✅ Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ✅ Include your routers
app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(notification_routes.router)
app.include_router(forum_routes.router)


# ✅ Run DB + index init on startup
@app.on_event("startup")
async def on_startup():
    # Tiny retry so a momentary DB disconnect doesn't crash the app.
    for attempt in range(2):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            break  # success
        except Exception as e:
            if attempt == 0:
                logger.warning("[startup] DB init failed, retrying once: %r", e)
                await asyncio.sleep(0.5)
            else:
                # Tables should already exist from previous runs.
                logger.error("[startup] Skipping DB init due to error: %r", e)

    try:
        await app.state.vector_index.ensure_schema()
    except ForumError:
        # Writes degrade to document-only until the index is reachable.
        logger.error("[startup] Weaviate schema setup failed; search mirrors will be missing")


@app.on_event("shutdown")
async def on_shutdown():
    await app.state.vector_index.aclose()
    await app.state.embedder.aclose()
    await engine.dispose()
