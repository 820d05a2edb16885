from datetime import datetime
from typing import Callable, Optional

import crud, models
from exceptions import BlobStoreError
from logging_config import get_logger
from registry import ShareRegistry

logger = get_logger(__name__)


class ExpirationSweeper:
    """Purges expired shares and reconciles blob deletions that previously failed.

    Holds no timer of its own; an external scheduler calls the
    ``/api/store/clearExpired`` route.
    """

    def __init__(self, registry: ShareRegistry, clock: Optional[Callable[[], datetime]] = None):
        self.registry = registry
        self.db = registry.db
        self.clock = clock or registry.clock

    async def sweep(self) -> int:
        now = self.clock()
        expired = await crud.get_expired_shares(self.db, now)
        candidates = [(share.share_code, share.storage_keys) for share in expired]
        logger.info(f"Sweep at {now}: {len(candidates)} expired share(s) found")

        removed = 0
        for share_code, storage_keys in candidates:
            try:
                # Re-check expiry at claim time; the row may have been replaced or consumed meanwhile.
                if await self.registry.remove(share_code, storage_keys, models.ShareEntry.expires_at <= now):
                    removed += 1
            except Exception:
                logger.exception(f"Failed to remove expired share {share_code}; continuing sweep")
                await self.db.rollback()

        logger.info(f"Sweep finished: {removed} expired share(s) removed")
        return removed

    async def retry_pending_blob_deletions(self) -> int:
        pending = await crud.get_pending_blob_deletions(self.db, self.registry.settings.PENDING_BLOB_BATCH_SIZE)
        if not pending:
            return 0
        logger.info(f"Retrying {len(pending)} pending blob deletion(s)")

        reconciled = 0
        for row in pending:
            try:
                await self.registry.blob_store.delete_files([row.storage_key])
            except BlobStoreError as e:
                row.attempts += 1
                row.last_error = str(e)
                logger.error(f"Blob {row.storage_key} (share {row.share_code}) still not deleted after {row.attempts} attempt(s): {str(e)}")
                continue
            except Exception as e:
                row.attempts += 1
                row.last_error = f"{type(e).__name__}: {e}"
                logger.exception(f"Unexpected error retrying blob {row.storage_key} (share {row.share_code}); leaving it queued")
                continue
            await self.db.delete(row)
            reconciled += 1

        await self.db.commit()
        logger.info(f"Reconciled {reconciled} of {len(pending)} pending blob deletion(s)")
        return reconciled
