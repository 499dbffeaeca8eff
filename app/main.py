from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers import integrations
from app.core.config import settings

OPENAPI_DESCRIPTION = """
Ledger Sync internal API for accounting and bank integrations.

## Tenant scope
Every endpoint is tenant scoped. The platform gateway authenticates the caller
and forwards the tenant in the **X-Tenant-ID** header.

## API groups
- **integrations** – list integrations, test connections, trigger syncs,
  inspect sync jobs and logs, retry failed jobs, disconnect
"""

app = FastAPI(
    title="Ledger Sync API",
    description=OPENAPI_DESCRIPTION,
    version="0.1.0",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    servers=[{"url": "/", "description": "Current host"}],
    openapi_tags=[
        {"name": "integrations", "description": "Tenant integrations, sync jobs and sync logs"},
    ],
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Group all API routes under /api/v1
api_router = APIRouter(prefix="/api/v1")
api_router.include_router(integrations.router)

app.include_router(api_router)


@app.get("/", tags=["root"])
async def root():
    """Root endpoint; returns API info."""
    return {"message": "Ledger Sync API"}


@app.get("/health", tags=["root"])
async def health_check():
    """Health check for load balancer / monitoring."""
    return {"status": "healthy"}
