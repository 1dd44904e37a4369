# app/main.py
from fastapi import FastAPI, Request, status as fastapi_status, HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

# Import Middleware & Konfigurasi
from app.core.config import (
    setup_logging,
    CORS_ORIGINS,
    TOKEN_HYDRATION_FAILURE_POLICY,
    TOKEN_HYDRATION_RETRIES,
    TOKEN_HYDRATION_RETRY_DELAY,
)
from loguru import logger
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from app.middleware.logging import RequestLoggingMiddleware
from app.core.rate_limiter import get_rate_limiter, rate_limit_exception_handler
from slowapi.errors import RateLimitExceeded

# Import komponen aplikasi lain
from app.db.database import init_db, ping_database
from app.db.token_store import BeanieTokenStore
from app.core.token_manager import TokenManager, TokenHydrationError
from app.api.v1.api import api_router_v1


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application startup...")
    await init_db()
    logger.info("Database initialized.")

    token_manager = TokenManager(
        BeanieTokenStore(),
        policy=TOKEN_HYDRATION_FAILURE_POLICY,
        retry_attempts=TOKEN_HYDRATION_RETRIES,
        retry_delay=TOKEN_HYDRATION_RETRY_DELAY,
    )
    app.state.token_manager = token_manager
    try:
        await token_manager.initialize()
    except TokenHydrationError:
        # Alokasi pertama akan mencoba hydrate lagi
        logger.warning("Token counter not hydrated at startup; NFT creation stays blocked until hydration succeeds.")
    yield
    logger.info("Application shutdown...")


app = FastAPI(
    title="NFT Marketplace API",
    description="Lazy-minting NFT marketplace backend: listings, purchases, auctions and stats.",
    version="1.0.0",
    lifespan=lifespan
)

# --- KONFIGURASI MIDDLEWARE ---

# 1. Error Handling
app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    logger.error(f"Validation Error: {exc.errors()}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation Error", "errors": jsonable_errors(exc)},
    )
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP Exception: Status={exc.status_code}, Detail={exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled Exception: {exc}")
    return JSONResponse(status_code=fastapi_status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "An internal server error occurred."})

def jsonable_errors(exc: ValidationError):
    # ctx bisa berisi objek exception yang tidak bisa di-serialize
    return jsonable_encoder([{key: value for key, value in err.items() if key != "ctx"} for err in exc.errors()])

# 2. Request Logging Middleware
app.add_middleware(RequestLoggingMiddleware)

# 3. CORS (frontend marketplace)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 4. Rate Limiter State (untuk decorator @limiter.limit)
app.state.limiter = get_rate_limiter()

# 5. GZip Middleware
app.add_middleware(GZipMiddleware, minimum_size=500)

# --- END MIDDLEWARE ---


app.include_router(api_router_v1)

@app.get("/")
async def read_root():
    return {"message": "Welcome to the NFT marketplace API!"}

@app.get("/health")
async def health(request: Request):
    """Liveness plus token counter diagnostics."""
    token_manager = getattr(request.app.state, "token_manager", None)
    if token_manager is None:
        return {"status": "starting", "token_manager": None}
    return {
        "status": "ok",
        "token_manager": {
            "initialized": token_manager.initialized,
            "current_token_id": token_manager.get_current_token_id(),
            "policy": token_manager.policy.value,
        },
    }

@app.get("/ping-mongodb")
async def ping_mongodb():
    try:
        await ping_database()
        return {"status": "success", "message": "MongoDB connection is healthy."}
    except Exception as e:
        logger.error(f"MongoDB ping failed: {e}")
        raise HTTPException(status_code=503, detail="MongoDB connection failed.")
