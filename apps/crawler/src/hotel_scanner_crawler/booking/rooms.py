"""Room table extraction for hotel detail pages."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hotel_scanner_core.schemas import RoomRecord

from .extract import collapse_whitespace, extract_attribute, extract_numeric, extract_text, select, select_all
from .rules import (
    ROOM_BED,
    ROOM_CONDITION,
    ROOM_FACILITY,
    ROOM_OCCUPANCY,
    ROOM_PRICE,
    ROOM_ROWS,
    ROOM_TYPE_CELL,
    ROOM_TYPE_NAME,
    SUMMARY_ROW_CLASS,
)

if TYPE_CHECKING:
    from selectolax.lexbor import LexborNode  # type: ignore[import-untyped]

    from .extract import Queryable

SQUARE_FEET = "ft²"
SQUARE_FEET_TO_METERS = 0.092903

_PRICE_NOISE = re.compile(r"[\s,]+")
_PRICE_NUMBER = re.compile(r"[\d.]+")
_PRICE_CURRENCY = re.compile(r"[^\d.]+")


def normalize_feature(text: str) -> str | None:
    """Facility label without its bullet; square feet become square meters."""
    cleaned = collapse_whitespace(text.strip().removeprefix("•"))
    if cleaned is None:
        return None
    if SQUARE_FEET in cleaned:
        feet = extract_numeric(cleaned.replace(",", ""))
        if feet is not None:
            return f"{math.floor(feet * SQUARE_FEET_TO_METERS)} m²"
    return cleaned


def parse_price(text: str | None) -> tuple[float, str] | None:
    """Split a price cell into ``(amount, currency)``; None unless both parse."""
    if not text:
        return None
    compact = _PRICE_NOISE.sub("", text)
    number = _PRICE_NUMBER.search(compact)
    currency = _PRICE_CURRENCY.search(compact)
    if number is None or currency is None:
        return None
    try:
        return float(number.group()), currency.group()
    except ValueError:
        return None


@dataclass
class RoomType:
    """Contents of a room-type cell, shared by every row it spans."""

    name: str | None = None
    bed_type: str | None = None
    features: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: LexborNode) -> RoomType:
        features = []
        for node in select_all(row, ROOM_FACILITY):
            feature = normalize_feature(extract_text(node) or "")
            if feature:
                features.append(feature)
        return cls(
            name=extract_text(select(row, ROOM_TYPE_NAME)),
            bed_type=collapse_whitespace(extract_text(select(row, ROOM_BED))),
            features=features,
        )


def _is_summary_row(row: LexborNode) -> bool:
    classes = (extract_attribute(row, "class") or "").split()
    return SUMMARY_ROW_CLASS in classes


def _conditions(row: LexborNode) -> list[str] | None:
    conditions = [
        text
        for node in select_all(row, ROOM_CONDITION)
        if (text := collapse_whitespace(extract_text(node)))
    ]
    return conditions or None


def extract_rooms(document: Queryable) -> list[RoomRecord]:
    """One RoomRecord per non-summary row of the room table.

    Rows without their own type cell (rowspan) inherit the last one seen.
    Rows without a parsable price are kept as unavailable rooms.
    """
    rooms: list[RoomRecord] = []
    room_type = RoomType()
    for row in select_all(document, ROOM_ROWS):
        if _is_summary_row(row):
            continue
        if select(row, ROOM_TYPE_CELL) is not None:
            room_type = RoomType.from_row(row)

        price = parse_price(extract_text(select(row, ROOM_PRICE)))
        room = RoomRecord(
            available=price is not None,
            room_type=room_type.name,
            bed_type=room_type.bed_type,
            capacity=ROOM_OCCUPANCY.apply(row),
            conditions=_conditions(row),
        )
        if price is not None:
            room.price, room.currency = price
            room.features = list(room_type.features)
        rooms.append(room)
    return rooms
