from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from mostrador.database.database import sync_engine, Base

# Import middleware
from mostrador.common.middleware import CashierContextMiddleware, SecurityHeadersMiddleware
from mostrador.common.exceptions import POSError, CompensationFailure

# Import routers
from mostrador.modules.locations.router import location_router
from mostrador.modules.products.router import product_router
from mostrador.modules.inventory.router import stock_router
from mostrador.modules.customers.router import router as customers_router
from mostrador.modules.pos.routers import drawers_router, sales_router

# Import models for table creation
import mostrador.modules.locations.models
import mostrador.modules.products.models
import mostrador.modules.customers.models
import mostrador.modules.pos.models

from mostrador.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Mostrador POS API",
    description="Cobro de ventas, crédito de clientes, stock por local y turnos de caja",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(CashierContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(POSError)
async def pos_error_handler(request: Request, exc: POSError):
    if isinstance(exc, CompensationFailure):
        logger.critical(f"{request.method} {request.url.path}: {exc.code} {exc.details}")
    elif exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(location_router, prefix="/api/v1")
app.include_router(product_router, prefix="/api/v1")
app.include_router(stock_router, prefix="/api/v1")
app.include_router(customers_router, prefix="/api/v1")
app.include_router(drawers_router, prefix="/api/v1")
app.include_router(sales_router, prefix="/api/v1")

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)

@app.get("/")
async def read_root():
    return {
        "message": "Mostrador POS API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}

@app.on_event("startup")
async def startup_event():
    logger.info("Mostrador POS API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Notifications enabled: {settings.NOTIFICATIONS_ENABLED}")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Mostrador POS API shutting down...")
