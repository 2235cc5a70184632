import enum

from sqlalchemy import Column, DateTime, Enum, Index, String, Text
from sqlalchemy.orm import relationship

from sitecrawl.platform.db.base import BaseModel


class PageStatus(enum.Enum):
    """Page crawl lifecycle; see features.pages.services.lifecycle for legal moves."""
    queued = "queued"
    running = "running"
    done = "done"
    error = "error"
    stopped = "stopped"


class Page(BaseModel):
    """
    A registered URL and its crawl lifecycle.

    url holds the normalized identity and stays unique across soft-deleted
    rows, so re-adding a deleted URL restores the old row instead of
    inserting a duplicate.
    """
    __tablename__ = "pages"

    url = Column(String(2048), unique=True, nullable=False, index=True)
    title = Column(Text, nullable=True)
    status = Column(Enum(PageStatus), default=PageStatus.queued, nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    # Soft delete marker; NULL means active
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    result = relationship(
        "CrawlResult",
        back_populates="page",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_pages_status_deleted", "status", "deleted_at"),
    )
