"""Enums shared by crawler schemas."""

from enum import StrEnum


class RequestLabel(StrEnum):
    """Intent tag carried by a queued request; selects the page handler."""

    START = "start"
    PAGE = "page"
    DETAIL = "detail"
    FILTER_PAGE = "filterPage"


class RouteState(StrEnum):
    """Lifecycle of a fetched page inside the request router.

    Every attempt starts as ``DISPATCHED`` and stays there when the fetch
    fails before the router sees a page.
    """

    DISPATCHED = "DISPATCHED"
    ACCEPTED = "ACCEPTED"
    RETIRED = "RETIRED"
