from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

import schemas
from blob_store import BlobStore, get_blob_store
from config import settings as global_app_settings, Settings
from database import get_db
from exceptions import (
    BlobStoreError,
    InvalidShareInput,
    ShareCodeGenerationExhausted,
    ShareExpired,
    ShareNotFound,
)
from logging_config import get_logger
from registry import ShareRegistry
from sweeper import ExpirationSweeper

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/store",
    tags=["shares"],
)

def get_settings():
    return global_app_settings

def get_registry(
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    current_settings: Settings = Depends(get_settings)
) -> ShareRegistry:
    return ShareRegistry(db, blob_store, current_settings)

@router.post("", response_model=schemas.ShareEntryRead, status_code=201)
async def create_share(
    share_in: schemas.ShareCreate,
    registry: ShareRegistry = Depends(get_registry)
):
    logger.info(f"Create share request with {len(share_in.files)} file(s), expires_in={share_in.expires_in_seconds}, one_time={share_in.one_time_code}")
    try:
        return await registry.create_entry(
            share_in.files,
            expires_in_seconds=share_in.expires_in_seconds,
            one_time_code=share_in.one_time_code
        )
    except InvalidShareInput as e:
        logger.warning(f"Rejected share request: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))
    except ShareCodeGenerationExhausted as e:
        raise HTTPException(status_code=503, detail=str(e))

@router.get("", response_model=schemas.ShareEntryRead)
async def get_share(
    code: str = Query(..., min_length=1, description="Share code"),
    peek: bool = Query(False, description="Validate the code without consuming a one-time share"),
    registry: ShareRegistry = Depends(get_registry)
):
    logger.info(f"Fetch request for share {code} (peek={peek})")
    try:
        return await registry.get_entry(code, consume=not peek)
    except ShareNotFound:
        raise HTTPException(status_code=404, detail="File not found")
    except ShareExpired:
        raise HTTPException(status_code=410, detail="File has expired")

@router.delete("", status_code=204)
async def delete_share(
    code: str = Query(..., min_length=1, description="Share code"),
    registry: ShareRegistry = Depends(get_registry)
):
    logger.info(f"Delete request for share {code}")
    if not await registry.delete_entry(code):
        raise HTTPException(status_code=404, detail="File not found")
    return Response(status_code=204)

@router.api_route("/clearExpired", methods=["GET", "POST"], response_model=schemas.SweepResult)
async def clear_expired(registry: ShareRegistry = Depends(get_registry)):
    sweeper = ExpirationSweeper(registry)
    removed = await sweeper.sweep()
    orphans_reconciled = await sweeper.retry_pending_blob_deletions()
    return schemas.SweepResult(
        message="Expired files deleted successfully",
        removed=removed,
        orphans_reconciled=orphans_reconciled
    )

@router.get("/stats", response_model=schemas.UsageReport)
async def usage_stats(blob_store: BlobStore = Depends(get_blob_store)):
    try:
        return await blob_store.get_usage_info()
    except BlobStoreError as e:
        raise HTTPException(status_code=502, detail=f"Blob store unavailable: {str(e)}")
