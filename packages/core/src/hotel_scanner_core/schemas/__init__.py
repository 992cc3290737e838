"""Core schemas for Hotel Scanner."""

from .common import CamelModel
from .crawl import (
    DEFAULT_SORT_BY,
    CrawlInput,
    CrawlState,
    CrawlSummary,
    FailureRecord,
    FetchRequest,
)
from .enums import RequestLabel, RouteState
from .hotel import Address, Coordinates, HotelDetailRecord, ListingRecord, RoomRecord

__all__ = [
    "DEFAULT_SORT_BY",
    "Address",
    "CamelModel",
    "Coordinates",
    "CrawlInput",
    "CrawlState",
    "CrawlSummary",
    "FailureRecord",
    "FetchRequest",
    "HotelDetailRecord",
    "ListingRecord",
    "RequestLabel",
    "RoomRecord",
    "RouteState",
]
