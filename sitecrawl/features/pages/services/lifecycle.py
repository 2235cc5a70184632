"""
Page lifecycle state machine.

    queued ──▶ running ──▶ done | error | stopped
       ▲                          │
       └──────── re-enqueue ──────┘

done, error and stopped are all re-enterable. An operator stop is accepted
from any state. queued -> error happens when the job could not be enqueued.
Moves into running from a finished state cover a duplicate job reaching the
worker after the page was already crawled.
"""
from typing import Dict, FrozenSet, Optional

from sitecrawl.features.pages.models.page import Page, PageStatus
from sitecrawl.platform.exceptions import InvalidTransitionError

_REENTRY = frozenset({PageStatus.queued, PageStatus.running, PageStatus.stopped})

ALLOWED_TRANSITIONS: Dict[PageStatus, FrozenSet[PageStatus]] = {
    PageStatus.queued: frozenset({PageStatus.queued, PageStatus.running, PageStatus.stopped, PageStatus.error}),
    PageStatus.running: frozenset({PageStatus.done, PageStatus.error, PageStatus.stopped}),
    PageStatus.done: _REENTRY,
    PageStatus.error: _REENTRY,
    PageStatus.stopped: _REENTRY,
}


def can_transition(current: PageStatus, target: PageStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(
    page: Page,
    target: PageStatus,
    *,
    title: Optional[str] = None,
    error_message: Optional[str] = None,
) -> Page:
    """
    Validate and apply a status change, including what each target clears or sets:

    - done: title updated (when given), error cleared
    - error: error_message set
    - stopped: error cleared
    - queued / running: status only

    Raises InvalidTransitionError for a move outside ALLOWED_TRANSITIONS.
    """
    current = page.status or PageStatus.queued
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)

    page.status = target

    if target == PageStatus.done:
        if title is not None:
            page.title = title
        page.error_message = None
    elif target == PageStatus.error:
        page.error_message = error_message
    elif target == PageStatus.stopped:
        page.error_message = None

    return page
