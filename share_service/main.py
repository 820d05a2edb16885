from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from blob_store import UploadThingBlobStore, blob_store_holder
from database import engine
from models import Base
from routers import shares as shares_router
from logging_config import get_logger
from config import settings

logger = get_logger(__name__)

async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or already exist.")

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Share Service starting up...")
    await create_db_and_tables()
    logger.info(f"Initializing blob store client for {settings.BLOB_STORE_URL}")
    if not settings.BLOB_STORE_API_KEY:
        logger.warning("BLOB_STORE_API_KEY is not set; blob deletions and usage reports will be rejected")
    blob_store_holder["store"] = UploadThingBlobStore.from_settings(settings)
    yield
    logger.info("Share Service shutting down...")
    store = blob_store_holder.pop("store", None)
    if store is not None:
        await store.aclose()
    await engine.dispose()

app = FastAPI(
    title="Share Service",
    version="0.1.0",
    lifespan=lifespan
)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

app.include_router(shares_router.router)

@app.get("/ping", tags=["Health"])
async def ping():
    logger.debug("Ping endpoint was called")
    return {"message": "Share Service is alive!"}

@app.get("/", tags=["Root"])
async def read_root():
    logger.info("Root endpoint was called")
    return {"message": "Welcome to the Share Service API"}

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Share Service on {settings.SHARE_HOST}:{settings.SHARE_PORT}")
    uvicorn.run("main:app", host=settings.SHARE_HOST, port=settings.SHARE_PORT)
