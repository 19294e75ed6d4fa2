from contextlib import asynccontextmanager
from time import perf_counter

import jwt
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import yatrasathi.audit  # noqa: F401  registers the session hooks
from yatrasathi.api import accounting, audit, auth, billing, bookings, customers, dashboard, masters, payments, reports, travel_plans
from yatrasathi.config import settings
from yatrasathi.db import get_db
from yatrasathi.errors import AppError
from yatrasathi.logger import logger, setup_logging
from yatrasathi.responses import error_body, now, ok

setup_logging()

ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    503: "service_unavailable",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting {} API ({})", settings.company_name, settings.environment)
    yield
    logger.info("Shutting down {} API", settings.company_name)


app = FastAPI(title="YatraSathi", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(ERROR_CODES.get(exc.status_code, "error"), str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(exc.error, exc.message, exc.details)),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in error["loc"] if part != "body"), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("validation_error", "invalid request", details))


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity error on {} {}: {}", request.method, request.url.path, exc.orig)
    message = "duplicate record" if "unique" in str(exc.orig).lower() else "related records exist"
    return JSONResponse(status_code=409, content=error_body("conflict", message))


@app.exception_handler(jwt.PyJWTError)
async def token_error_handler(request: Request, exc: jwt.PyJWTError):
    return JSONResponse(status_code=401, content=error_body("unauthorized", "not authorized, token failed"))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("internal_error", "internal server error"))


app.include_router(auth.router)
app.include_router(auth.users_router)
app.include_router(bookings.router)
app.include_router(customers.router)
app.include_router(masters.stations_router)
app.include_router(masters.trains_router)
app.include_router(billing.router)
app.include_router(payments.router)
app.include_router(accounting.router)
app.include_router(reports.router)
app.include_router(dashboard.router)
app.include_router(audit.router)
app.include_router(travel_plans.router)


@app.get("/api/health", tags=["health"])
def health_check(db: Session = Depends(get_db)):
    started = perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health check failed: {}", exc)
        return JSONResponse(status_code=503, content=error_body("service_unavailable", "database unreachable"))
    return ok({
        "status": "healthy",
        "database": "connected",
        "db_response_ms": round((perf_counter() - started) * 1000, 2),
        "environment": settings.environment,
        "timestamp": now().isoformat(),
    })


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("yatrasathi.main:app", host="0.0.0.0", port=settings.port, reload=settings.environment == "development")
