import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.api.routes import admin_orders, admin_schedules, catalog, inventory, orders, webhooks
from storefront.core.database import Base, engine
from storefront.core.exceptions import InternalError, InvalidRequest, StorefrontError
from storefront.core.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables checked/created")
    yield
    engine.dispose()


app = FastAPI(
    title="Storefront Backend",
    description="Pre-order storefront: production schedules, slot-based ordering and e-Transfer reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        fields[".".join(loc) or "body"] = error.get("msg", "invalid")
    error = InvalidRequest(fields)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Include routers
app.include_router(catalog.router, prefix="/api", tags=["catalog"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(webhooks.router, prefix="/api", tags=["webhooks"])
app.include_router(admin_schedules.router, prefix="/api/admin", tags=["admin"])
app.include_router(admin_orders.router, prefix="/api/admin/orders", tags=["admin"])
app.include_router(inventory.router, prefix="/api/admin", tags=["admin"])


@app.get("/")
async def root():
    return {"message": "Storefront Backend API"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
