"""Share registry: the lifecycle of share codes and their file sets.

Entries are created after the client has uploaded its files to the blob
store, read by anyone who knows the code, and destroyed either by the first
retrieval of a one-time code, by an explicit delete, or by the expiration
sweeper. Destruction always removes the registry row first and then deletes
the blobs; blob keys that cannot be deleted are queued in
``pending_blob_deletions`` so an orphaned blob is the worst outcome.
"""
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import crud, models, schemas
from blob_store import BlobStore
from config import Settings
from exceptions import (
    BlobStoreError,
    InvalidShareInput,
    ShareCodeGenerationExhausted,
    ShareExpired,
    ShareNotFound,
)
from logging_config import get_logger
from share_codes import ShareCodeGenerator

logger = get_logger(__name__)


def normalize_share_code(share_code: str) -> str:
    return share_code.strip().upper()


class ShareRegistry:
    def __init__(
        self,
        db: AsyncSession,
        blob_store: BlobStore,
        settings: Settings,
        clock: Callable[[], datetime] = models.utcnow,
        code_generator: Optional[Callable[[], str]] = None,
    ):
        self.db = db
        self.blob_store = blob_store
        self.settings = settings
        self.clock = clock
        self.code_generator = code_generator or ShareCodeGenerator()

    def _validate(self, files: List[schemas.FileRecord], expires_in_seconds: Optional[int]) -> int:
        if not files:
            raise InvalidShareInput("At least one file is required")
        if len(files) > self.settings.MAX_FILES_PER_SHARE:
            raise InvalidShareInput(f"A share can hold at most {self.settings.MAX_FILES_PER_SHARE} files")
        for f in files:
            if not f.storage_key:
                raise InvalidShareInput(f"File '{f.name}' has no storage key")
            if f.size < 0:
                raise InvalidShareInput(f"File '{f.name}' has a negative size")
            if f.size > self.settings.MAX_FILE_SIZE_BYTES:
                raise InvalidShareInput(
                    f"File '{f.name}' exceeds the {self.settings.MAX_FILE_SIZE_BYTES} byte limit"
                )

        if expires_in_seconds is None:
            return self.settings.DEFAULT_EXPIRES_IN_SECONDS
        if expires_in_seconds <= 0 or expires_in_seconds > self.settings.MAX_EXPIRES_IN_SECONDS:
            raise InvalidShareInput(
                f"expiresInSeconds must be between 1 and {self.settings.MAX_EXPIRES_IN_SECONDS}"
            )
        return expires_in_seconds

    async def create_entry(
        self,
        files: Iterable[Union[schemas.FileRecord, dict]],
        expires_in_seconds: Optional[int] = None,
        one_time_code: bool = False,
    ) -> schemas.ShareEntryRead:
        try:
            records = [f if isinstance(f, schemas.FileRecord) else schemas.FileRecord.model_validate(f) for f in files]
        except ValueError as e:
            raise InvalidShareInput(str(e)) from e
        expires_in_seconds = self._validate(records, expires_in_seconds)

        stored_files = [f.model_dump() for f in records]
        total_size = sum(f.size for f in records)

        for attempt in range(1, self.settings.SHARE_CODE_MAX_ATTEMPTS + 1):
            share_code = self.code_generator()
            if await crud.share_code_exists(self.db, share_code):
                logger.warning(f"Share code {share_code} already in use (attempt {attempt}/{self.settings.SHARE_CODE_MAX_ATTEMPTS}). Regenerating.")
                continue

            created_at = self.clock()
            try:
                db_share = await crud.create_share(
                    self.db,
                    share_code=share_code,
                    files=stored_files,
                    total_size=total_size,
                    created_at=created_at,
                    expires_in_seconds=expires_in_seconds,
                    expires_at=created_at + timedelta(seconds=expires_in_seconds),
                    one_time_code=one_time_code,
                )
            except IntegrityError:
                await self.db.rollback()
                logger.warning(f"Share code {share_code} was taken concurrently (attempt {attempt}/{self.settings.SHARE_CODE_MAX_ATTEMPTS}). Regenerating.")
                continue

            logger.info(f"Created share {share_code} with {len(records)} file(s), {total_size} bytes, expires in {expires_in_seconds}s, one_time={one_time_code}")
            return schemas.ShareEntryRead.model_validate(db_share)

        logger.error(f"Could not generate an unused share code after {self.settings.SHARE_CODE_MAX_ATTEMPTS} attempts")
        raise ShareCodeGenerationExhausted(
            f"No unused share code found after {self.settings.SHARE_CODE_MAX_ATTEMPTS} attempts"
        )

    async def get_entry(self, share_code: str, consume: bool = True) -> schemas.ShareEntryRead:
        """Resolve a share code.

        Expiry is checked here on every lookup, independently of the sweeper.
        With ``consume`` set, a one-time entry is claimed and destroyed; pass
        ``consume=False`` to validate a code without using it up.
        """
        share_code = normalize_share_code(share_code)
        db_share = await crud.get_share_by_code(self.db, share_code)
        if db_share is None:
            logger.warning(f"Share {share_code} not found")
            raise ShareNotFound(share_code)

        now = self.clock()
        if db_share.is_expired(now):
            logger.warning(f"Share {share_code} expired at {db_share.expires_at}")
            raise ShareExpired(share_code)

        entry = schemas.ShareEntryRead.model_validate(db_share)
        if not (db_share.one_time_code and consume):
            return entry

        claimed = await crud.claim_share(self.db, share_code, models.ShareEntry.expires_at > now)
        if not claimed:
            await self.db.rollback()
            logger.warning(f"One-time share {share_code} was already consumed")
            raise ShareNotFound(share_code)
        await self.db.commit()
        logger.info(f"One-time share {share_code} consumed")

        await self.delete_blobs(share_code, [f.storage_key for f in entry.files])
        return entry

    async def delete_entry(self, share_code: str) -> bool:
        share_code = normalize_share_code(share_code)
        db_share = await crud.get_share_by_code(self.db, share_code)
        if db_share is None:
            logger.info(f"Delete requested for unknown share {share_code}")
            return False
        return await self.remove(share_code, db_share.storage_keys)

    async def remove(self, share_code: str, storage_keys: List[str], *criteria) -> bool:
        """Claim the row (optionally only while ``criteria`` hold) and cascade to the blob store."""
        claimed = await crud.claim_share(self.db, share_code, *criteria)
        if not claimed:
            await self.db.rollback()
            logger.info(f"Share {share_code} already removed")
            return False
        await self.db.commit()
        logger.info(f"Removed share {share_code}")

        await self.delete_blobs(share_code, storage_keys)
        return True

    async def delete_blobs(self, share_code: Optional[str], storage_keys: List[str]) -> bool:
        """Best-effort blob deletion; failures are queued for the sweeper to retry."""
        if not storage_keys:
            return True
        try:
            await self.blob_store.delete_files(storage_keys)
            return True
        except BlobStoreError as e:
            logger.error(f"Blob deletion failed for share {share_code}: {str(e)}. Queuing {len(storage_keys)} key(s) for retry.")
            error = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error deleting blobs for share {share_code}. Queuing {len(storage_keys)} key(s) for retry.")
            error = f"{type(e).__name__}: {e}"
        crud.add_pending_blob_deletions(self.db, storage_keys, share_code, error)
        await self.db.commit()
        return False
