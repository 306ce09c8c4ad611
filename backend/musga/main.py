"""
Musga - FastAPI Application

Main entry point for the vocal licensing marketplace backend.

Components:
- Identity: accounts, bearer tokens
- Catalog: vocal tracks, search, view counters
- Ledger: checkout, confirmation, earnings
- Asset Pipeline: duration probe + 30s preview per upload
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import CORS_ORIGINS, LOG_LEVEL, PORT
from .database import init_db
from .errors import MarketplaceError
from .routers import auth_router, vocals_router, payments_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and initialize database on startup."""
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Musga",
    description="""
    Musga - Vocal Licensing Marketplace

    Singers upload vocal tracks; producers and DJs browse, preview and
    license them.

    ## Flow
    1. **Identity**: register / login → bearer token
    2. **Catalog**: upload (asset job derives duration + preview), search, edit
    3. **Ledger**: create payment intent → confirm payment → download master

    ## Key Rules
    - The public catalog never lists inactive or sold tracks
    - amount = platform fee + seller amount, fixed at checkout
    - An exclusive track completes at most one sale
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Domain errors -> structured JSON with their status code."""
    log = logger.warning if exc.status_code >= 500 or exc.status_code == 422 else logger.info
    log(f"{exc.error_name} at {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error_name},
        headers=exc.headers(),
    )


# Include routers
app.include_router(auth_router)
app.include_router(vocals_router)
app.include_router(payments_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Musga",
        "version": "1.0.0",
        "description": "Vocal Licensing Marketplace",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m musga.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
