from datetime import datetime, timezone
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class FileRecord(CamelModel):
    name: str = Field(..., min_length=1)
    size: int = Field(..., ge=0, description="Size in bytes, as reported by the uploading client")
    storage_key: str = Field(..., min_length=1, description="Blob store key of the uploaded file")

class ShareCreate(CamelModel):
    files: List[FileRecord] = Field(default_factory=list)
    expires_in_seconds: Optional[int] = None
    one_time_code: bool = False

class ShareEntryRead(CamelModel):
    share_code: str
    files: List[FileRecord]
    total_size: int
    created_at: datetime
    expires_in_seconds: int
    expires_at: datetime
    one_time_code: bool

    @field_serializer("created_at", "expires_at")
    def serialize_utc(self, value: datetime) -> str:
        # Stored naive; always UTC.
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()

class SweepResult(CamelModel):
    message: str
    removed: int
    orphans_reconciled: int = 0

class UsageReport(CamelModel):
    total_bytes: int
    app_total_bytes: int
    files_uploaded: int
    limit_bytes: int
