from sitecrawl.features.pages.services.lifecycle import can_transition, transition
from sitecrawl.features.pages.services.page_service import PageService

__all__ = ["PageService", "can_transition", "transition"]
