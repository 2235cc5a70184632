from sitecrawl.features.pages.schemas.page import AddURLResult, BulkResult, PageRead

__all__ = ["AddURLResult", "BulkResult", "PageRead"]
