from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import logging

from app.core.config import settings
from app.api.v1 import router as api_router
from app.core.db import init_db as init_tables, engine
from app.core.exceptions import register_exception_handlers
from app.core.logging import init_logging
from app.core.middleware import SecurityMiddleware
from app.db.init_db import init_db as seed_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_logging()
    # Startup: create tables, then seed the admin account and default configs
    init_tables()
    with Session(engine) as session:
        seed_db(session)
    yield


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

if settings.BACKEND_CORS_ORIGINS:
    if isinstance(settings.BACKEND_CORS_ORIGINS, str):
        cors_origins = [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",")]
    else:
        cors_origins = [str(origin) for origin in settings.BACKEND_CORS_ORIGINS]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(SecurityMiddleware)

register_exception_handlers(app)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error_code": "VALIDATION_ERROR",
            "message": "Validation Error",
            "details": {"errors": str(exc.errors())},
        },
    )


@app.get("/api/v1/health")
def health_check():
    return {"status": "ok", "message": "Backend is running"}


app.include_router(api_router, prefix=settings.API_V1_STR)
