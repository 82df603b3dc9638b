"""FastAPI application entry point."""
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.credits import router as credits_router
from api.recap import router as recap_router
from api.transactions import router as transactions_router
from db.connection import engine
from models.transaction import Base
import models.goal  # noqa: F401  (registers goals table)
import models.allocation  # noqa: F401  (registers recaps/allocations tables)
from services.errors import AllocationError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create database tables if they don't exist
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Credit Allocation API",
    description="API for triaging incoming credits and allocating them to returns, reimbursements, spreads, categories and goals",
    version="1.0.0"
)

# CORS middleware to allow the web client to connect
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3001")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(credits_router)
app.include_router(transactions_router)
app.include_router(recap_router)


@app.exception_handler(AllocationError)
def allocation_error_handler(request: Request, exc: AllocationError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
    logger.info(f"{request.method} {request.url.path} -> 422 {message}")
    return JSONResponse(status_code=422, content={"error": message, "code": "validation_error"})


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError):
    logger.warning(f"{request.method} {request.url.path} -> 400 {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc), "code": "bad_request"})


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "internal_error"})


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Credit Allocation API", "docs": "/docs"}


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}
