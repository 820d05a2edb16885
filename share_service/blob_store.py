"""Blob store access for uploaded share files.

File bytes never pass through this service: clients upload straight to the
blob store and register the returned keys. The service only needs to delete
blobs when a share is destroyed and to read the store's usage accounting.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

import schemas
from config import Settings
from exceptions import BlobStoreError
from logging_config import get_logger

logger = get_logger(__name__)

blob_store_holder = {}


class BlobStore(ABC):
    """Capability interface for the external blob store."""

    @abstractmethod
    async def delete_files(self, storage_keys: List[str]) -> None:
        """Delete the given keys. Raises BlobStoreError if the store did not acknowledge."""
        pass

    @abstractmethod
    async def get_usage_info(self) -> schemas.UsageReport:
        """Return the store's usage counters. Raises BlobStoreError on failure."""
        pass


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.RequestError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class UploadThingBlobStore(BlobStore):
    """UploadThing REST API (v6) backed blob store."""

    DELETE_FILES_PATH = "/v6/deleteFiles"
    USAGE_INFO_PATH = "/v6/getUsageInfo"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
    ):
        self.client = client
        self.api_key = api_key
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "UploadThingBlobStore":
        if client is None:
            client = httpx.AsyncClient(
                base_url=settings.BLOB_STORE_URL,
                timeout=settings.BLOB_STORE_TIMEOUT_SECONDS,
            )
        return cls(
            client,
            api_key=settings.BLOB_STORE_API_KEY,
            max_attempts=settings.BLOB_DELETE_MAX_ATTEMPTS,
            backoff_seconds=settings.BLOB_RETRY_BACKOFF_SECONDS,
        )

    @property
    def headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "X-Uploadthing-Api-Key": self.api_key,
        }

    async def _post(self, path: str, payload: Optional[dict] = None) -> dict:
        response = await self.client.post(path, json=payload or {}, headers=self.headers)
        response.raise_for_status()
        return response.json()

    async def delete_files(self, storage_keys: List[str]) -> None:
        if not storage_keys:
            return
        logger.info(f"Deleting {len(storage_keys)} blob(s) from blob store: {storage_keys}")
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.backoff_seconds, max=10),
                retry=retry_if_exception(_is_retryable),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(f"Retrying blob deletion (attempt {attempt.retry_state.attempt_number}/{self.max_attempts}) for keys: {storage_keys}")
                    result = await self._post(self.DELETE_FILES_PATH, {"fileKeys": storage_keys})
        except httpx.HTTPStatusError as e:
            logger.error(f"Blob store rejected deletion of {storage_keys}. Status: {e.response.status_code}, Response: {e.response.text}")
            raise BlobStoreError(f"Blob deletion failed with status {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Blob deletion request failed for {storage_keys}: {str(e)}")
            raise BlobStoreError(f"Blob deletion request failed: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Blob store returned an unreadable deletion response for {storage_keys}: {str(e)}")
            raise BlobStoreError(f"Unreadable blob store response: {str(e)}") from e

        if not isinstance(result, dict):
            logger.error(f"Blob store returned a non-object deletion response for {storage_keys}: {result}")
            raise BlobStoreError("Unexpected blob store deletion response")
        if not result.get("success", False):
            logger.error(f"Blob store did not acknowledge deletion of {storage_keys}. Response: {result}")
            raise BlobStoreError("Blob store did not acknowledge deletion")
        logger.info(f"Blob store deleted {result.get('deletedCount', len(storage_keys))} blob(s)")

    async def get_usage_info(self) -> schemas.UsageReport:
        try:
            usage = await self._post(self.USAGE_INFO_PATH)
        except httpx.HTTPStatusError as e:
            logger.error(f"Usage info request failed. Status: {e.response.status_code}, Response: {e.response.text}")
            raise BlobStoreError(f"Usage info request failed with status {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Usage info request failed: {str(e)}")
            raise BlobStoreError(f"Usage info request failed: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Blob store returned an unreadable usage response: {str(e)}")
            raise BlobStoreError(f"Unreadable blob store response: {str(e)}") from e

        try:
            return schemas.UsageReport(
                total_bytes=usage["totalBytes"],
                app_total_bytes=usage["appTotalBytes"],
                files_uploaded=usage["filesUploaded"],
                limit_bytes=usage["limitBytes"],
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Unexpected usage info payload from blob store: {usage}")
            raise BlobStoreError(f"Unexpected usage info payload: {str(e)}") from e

    async def aclose(self) -> None:
        await self.client.aclose()


async def get_blob_store() -> BlobStore:
    return blob_store_holder["store"]
