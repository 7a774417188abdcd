"""HTTP API для Telegram Mini App и админки."""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api import admin, payments, public, support
from api.middleware import RequestLoggingMiddleware
from api.schemas import error_body, ok
from config import settings
from database.db import close_db, init_db
from services.exceptions import ServiceError
from services.notifications import notifier
from utils.helpers import now_utc
from utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("API starting...")
    await init_db()
    yield
    logger.info("API shutting down...")
    await notifier.close()
    await close_db()


app = FastAPI(title="Trailer Rental API", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id"],
)


# ================= ERRORS =================

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.code))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content=error_body(details or "Invalid request", "VALIDATION_ERROR"))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail), code))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("Internal server error", "INTERNAL_ERROR"))


# ================= ROUTES =================

@app.get("/api/health")
async def health():
    return ok({"status": "ok", "service": "trailer-rental-api", "timestamp": now_utc().isoformat()})


app.include_router(public.router)
app.include_router(payments.router)
app.include_router(support.router)
app.include_router(admin.router)


if __name__ == "__main__":
    uvicorn.run("api.main:app", host=settings.api_host, port=settings.api_port)
