from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sitecrawl.features.pages.models.page import PageStatus


class PageRead(BaseModel):
    id: int
    url: str
    title: Optional[str] = None
    status: PageStatus
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AddURLResult(BaseModel):
    page: PageRead
    message: str
    is_new: bool


class BulkResult(BaseModel):
    """
    Per-id outcome of a bulk call. The call itself only fails when every id
    failed, so callers wanting per-id detail read `failed`.
    """
    succeeded: List[int] = Field(default_factory=list)
    failed: Dict[int, str] = Field(default_factory=dict)

    @property
    def all_failed(self) -> bool:
        return bool(self.failed) and not self.succeeded

    def merge(self, other: "BulkResult") -> "BulkResult":
        failed = {**self.failed, **other.failed}
        succeeded = [page_id for page_id in other.succeeded if page_id not in failed]
        return BulkResult(succeeded=succeeded, failed=failed)
