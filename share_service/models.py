import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, JSON, Uuid
from sqlalchemy.orm import declarative_base

Base = declarative_base()

def utcnow() -> datetime:
    # Naive UTC, matching how DateTime columns are stored.
    return datetime.now(timezone.utc).replace(tzinfo=None)

class ShareEntry(Base):
    __tablename__ = "share_entries"

    share_code = Column(String(16), primary_key=True)
    files = Column(JSON, nullable=False)
    total_size = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_in_seconds = Column(Integer, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    one_time_code = Column(Boolean, nullable=False, default=False)

    @property
    def storage_keys(self) -> list[str]:
        return [f["storage_key"] for f in self.files]

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def __repr__(self):
        return f"<ShareEntry(code='{self.share_code}', files={len(self.files)}, expires_at={self.expires_at})>"

class PendingBlobDeletion(Base):
    __tablename__ = "pending_blob_deletions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    storage_key = Column(String, nullable=False, index=True)
    share_code = Column(String(16), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<PendingBlobDeletion(key='{self.storage_key}', share='{self.share_code}', attempts={self.attempts})>"
