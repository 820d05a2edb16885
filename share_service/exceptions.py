"""Domain exceptions for the share service."""


class ShareServiceError(Exception):
    """Base exception for the share service."""
    pass


class InvalidShareInput(ShareServiceError):
    """Raised when a share request is rejected before anything is written."""
    pass


class ShareNotFound(ShareServiceError):
    """Raised for unknown, consumed or already swept share codes."""

    def __init__(self, share_code: str):
        super().__init__(f"Share {share_code} not found")
        self.share_code = share_code


class ShareExpired(ShareServiceError):
    """Raised when a share exists but its expiration time has passed."""

    def __init__(self, share_code: str):
        super().__init__(f"Share {share_code} has expired")
        self.share_code = share_code


class ShareCodeGenerationExhausted(ShareServiceError):
    """Raised when no unused share code was found within the retry bound."""
    pass


class BlobStoreError(ShareServiceError):
    """Raised when the blob store is unreachable or rejects a call."""
    pass
