from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from sitecrawl.platform.db.base import BaseModel


class CrawlResult(BaseModel):
    """
    The single current analysis snapshot for a page.

    page_id is unique: every crawl overwrites this row (upsert), it never
    appends. Failed crawls are stored too, with error_message set.
    """
    __tablename__ = "crawl_results"

    page_id = Column(Integer, ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    html_version = Column(String(32), nullable=True)
    title = Column(Text, nullable=True)

    h1_count = Column(Integer, default=0, nullable=False)
    h2_count = Column(Integer, default=0, nullable=False)
    h3_count = Column(Integer, default=0, nullable=False)
    h4_count = Column(Integer, default=0, nullable=False)
    h5_count = Column(Integer, default=0, nullable=False)
    h6_count = Column(Integer, default=0, nullable=False)

    internal_links = Column(Integer, default=0, nullable=False)
    external_links = Column(Integer, default=0, nullable=False)
    has_login_form = Column(Boolean, default=False, nullable=False)

    error_message = Column(Text, nullable=True)

    page = relationship("Page", back_populates="result")
    broken_links = relationship(
        "BrokenLink",
        back_populates="crawl_result",
        cascade="all, delete-orphan",
        order_by="BrokenLink.id",
    )

    @property
    def broken_link_count(self) -> int:
        # Derived from the list; never stored separately
        return len(self.broken_links)


class BrokenLink(BaseModel):
    __tablename__ = "broken_links"

    crawl_result_id = Column(
        Integer, ForeignKey("crawl_results.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url = Column(Text, nullable=False)
    status_code = Column(Integer, nullable=True)  # NULL when no response was received
    error_message = Column(Text, nullable=True)

    crawl_result = relationship("CrawlResult", back_populates="broken_links")
