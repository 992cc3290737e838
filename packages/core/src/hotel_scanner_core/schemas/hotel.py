"""Hotel listing, detail and room records emitted by the crawler."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_serializer

from .common import CamelModel


class Coordinates(CamelModel):
    """Latitude/longitude pair."""

    lat: float
    lng: float


class Address(CamelModel):
    """Postal address as published in the hotel's structured data."""

    full: str | None = None
    postal_code: str | None = None
    locality: str | None = None
    country: str | None = None
    region: str | None = None


class RoomRecord(CamelModel):
    """One row of a hotel's room table.

    ``available`` is False whenever the row has no parsable price; such rooms
    are still part of the inventory and are emitted without price, currency
    or features.
    """

    available: bool = True
    room_type: str | None = None
    bed_type: str | None = None
    capacity: int | None = None
    price: float | None = None
    currency: str | None = None
    features: list[str] | None = None
    conditions: list[str] | None = None

    def to_output(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ListingRecord(CamelModel):
    """Summary record for one result card of a search-results page."""

    url: str
    name: str
    rating: float | None = None
    review_count: int | None = None
    star_rating: int | None = None
    price: float | None = None
    currency: str | None = None
    room_type: str | None = None
    capacity: int | None = None
    coordinates: Coordinates | None = None
    image: str | None = None
    total_result_count: int | None = None


class HotelDetailRecord(CamelModel):
    """Full hotel record extracted from a detail page."""

    url: str
    name: str | None = None
    type: str | None = None
    description: str | None = None
    star_rating: int | None = None
    rating: float | None = None
    review_count: int | None = None
    breakfast_included: str | None = None
    check_in: str | None = None
    check_out: str | None = None
    coordinates: Coordinates | None = None
    address: Address = Field(default_factory=Address)
    hero_image: str | None = None
    rooms: list[RoomRecord] = Field(default_factory=list)

    @field_serializer("rooms")
    def _serialize_rooms(self, rooms: list[RoomRecord]) -> list[dict[str, Any]]:
        return [room.to_output() for room in rooms]
