from sitecrawl.features.pages.models.page import Page, PageStatus

__all__ = ["Page", "PageStatus"]
