"""
Discount Resolution API - Main Application.

FastAPI application with CORS enabled for the storefront, checkout and admin.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.models import ErrorResponse

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Discount Resolution API",
    description="REST API for validating, applying and previewing store discounts",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Comma-separated list; "*" for the storefront and theme preview by default
_allowed_origins = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors (400), not 422."""
    errors = jsonable_encoder(exc.errors())
    detail = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
        for error in errors
    )
    body = ErrorResponse(error="Invalid request data", detail=detail)
    return JSONResponse(status_code=400, content=body.model_dump())


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "discount-resolution-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Discount Resolution API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import cart, discounts

# cart before discounts so the fixed /discounts/* paths are matched ahead of /discounts/{discount_id}
app.include_router(cart.router, prefix="/api/v1", tags=["Cart"])
app.include_router(discounts.router, prefix="/api/v1", tags=["Discounts"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
