"""
FastAPI application for the command gateway.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import accounts, approvals, commands, rules
from .schemas import HealthResponse
from ..core.config import VERSION, debug_enabled, get_cors_origins
from ..core.db import health_check, init_db
from ..core.errors import AuthError, CommandGateError
from ..util.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Command Gateway API",
    version=VERSION,
    description="Rule-gated command execution with credits, audit and two-approver review",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key"],
)


@app.exception_handler(CommandGateError)
async def command_gate_error_handler(request: Request, exc: CommandGateError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.error})
    if not isinstance(exc, AuthError):
        logger.log_operation(f"{request.method} {request.url.path}", "rejected",
                             {"status_code": exc.status_code, "error": exc.message})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    message = errors[0]["message"] if errors else "Invalid request"
    return JSONResponse(status_code=400, content={
        "error": "Validation error",
        "message": message,
        "errors": errors,
    })


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc!r}",
                 exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check()
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
    )


app.include_router(commands.router)
app.include_router(rules.router)
app.include_router(approvals.router)
app.include_router(accounts.router)
