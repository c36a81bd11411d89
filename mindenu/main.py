"""
FastAPI application entry point.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mindenu.config import APP_VERSION, get_settings
from mindenu.routes import actions, chat, health, oauth
from mindenu.utils.errors import AppError
from mindenu.utils.logger import get_logger, setup_logging

# Get settings
settings = get_settings()

# Setup logging
setup_logging(settings.log_level)
logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Mindenu API",
    description="Chat assistant for email and calendar with propose-then-confirm actions",
    version=APP_VERSION,
    debug=settings.debug,
)

# Configure CORS
# The mobile app authenticates with a bearer token, not cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.warning(f"{request.method} {request.url.path} failed [{exc.code}]: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for item in exc.errors():
        field = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        problems.append(f"{field}: {item.get('msg')}" if field else item.get("msg", ""))
    logger.info(f"Rejected {request.method} {request.url.path}: {problems}")
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": "bad_request", "details": "; ".join(problems) or "Invalid request."},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "internal_error", "details": "Something went wrong. Please try again."},
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(chat.router, prefix="/v1", tags=["Chat"])
app.include_router(oauth.router, prefix="/v1/oauth", tags=["OAuth"])
app.include_router(actions.router, prefix="/v1", tags=["Actions"])


@app.get("/")
async def root():
    """Root endpoint - points at docs."""
    return {
        "message": "Mindenu API",
        "docs": "/docs",
        "health": "/health",
    }
