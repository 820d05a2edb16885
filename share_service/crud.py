from datetime import datetime
from typing import Optional, List

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

import models

async def get_share_by_code(db: AsyncSession, share_code: str) -> Optional[models.ShareEntry]:
    result = await db.execute(select(models.ShareEntry).filter(models.ShareEntry.share_code == share_code))
    return result.scalars().first()

async def share_code_exists(db: AsyncSession, share_code: str) -> bool:
    result = await db.execute(select(models.ShareEntry.share_code).filter(models.ShareEntry.share_code == share_code))
    return result.scalar_one_or_none() is not None

async def create_share(
    db: AsyncSession,
    share_code: str,
    files: List[dict],
    total_size: int,
    created_at: datetime,
    expires_in_seconds: int,
    expires_at: datetime,
    one_time_code: bool
) -> models.ShareEntry:
    db_share = models.ShareEntry(
        share_code=share_code,
        files=files,
        total_size=total_size,
        created_at=created_at,
        expires_in_seconds=expires_in_seconds,
        expires_at=expires_at,
        one_time_code=one_time_code
    )
    db.add(db_share)
    await db.commit()
    await db.refresh(db_share)
    return db_share

async def claim_share(db: AsyncSession, share_code: str, *criteria) -> bool:
    """Delete the share row if it still matches ``criteria``; True if this call removed it.

    A single DELETE ... RETURNING, so concurrent callers cannot both claim the same row.
    The caller commits.
    """
    stmt = (
        delete(models.ShareEntry)
        .where(models.ShareEntry.share_code == share_code, *criteria)
        .returning(models.ShareEntry.share_code)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none() is not None

async def get_expired_shares(db: AsyncSession, now: datetime) -> List[models.ShareEntry]:
    result = await db.execute(
        select(models.ShareEntry)
        .filter(models.ShareEntry.expires_at <= now)
        .order_by(models.ShareEntry.expires_at)
    )
    return result.scalars().all()

def add_pending_blob_deletions(db: AsyncSession, storage_keys: List[str], share_code: Optional[str], error: str) -> None:
    for key in storage_keys:
        db.add(models.PendingBlobDeletion(storage_key=key, share_code=share_code, attempts=1, last_error=error))

async def get_pending_blob_deletions(db: AsyncSession, limit: int) -> List[models.PendingBlobDeletion]:
    result = await db.execute(
        select(models.PendingBlobDeletion)
        .order_by(models.PendingBlobDeletion.created_at)
        .limit(limit)
    )
    return result.scalars().all()
