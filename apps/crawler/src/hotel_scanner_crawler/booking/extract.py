"""Tolerant field extraction over selectolax DOM nodes.

Nothing in this module raises on missing or odd markup: every primitive
returns None instead, and callers chain strategies through ``ExtractionRule``
until one produces a value.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

if TYPE_CHECKING:
    from selectolax.lexbor import LexborNode  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"\d+")
_DIGIT = re.compile(r"\d")
_DECIMAL = re.compile(r"\d+(?:[.,]\d+)?")
_WHITESPACE = re.compile(r"\s+")
_NUMBER_NOISE = re.compile(r"[\s.,]+")
_CSS_URL = re.compile(r"url\((['\"]?)(.*?)\1\)")

# Pseudo-attributes that read the node's text instead of an HTML attribute.
_TEXT_CONTENT = frozenset({"textContent", "innerText"})

_ACCESS_ERRORS = (AttributeError, IndexError, KeyError, TypeError, ValueError, UnicodeError)


class Queryable(Protocol):
    """Anything with CSS lookup: a parser or a node."""

    def css_first(self, query: str) -> LexborNode | None: ...

    def css(self, query: str) -> list[LexborNode]: ...


def select(node: Queryable | None, selector: str) -> LexborNode | None:
    """First descendant of *node* matching *selector*, or None."""
    if node is None:
        return None
    try:
        return node.css_first(selector)
    except _ACCESS_ERRORS:
        return None


def select_all(node: Queryable | None, selector: str) -> list[LexborNode]:
    if node is None:
        return []
    try:
        return list(node.css(selector))
    except _ACCESS_ERRORS:
        return []


def extract_attribute(node: LexborNode | None, attribute_name: str) -> str | None:
    """Stripped attribute value (or text for ``textContent``); None if empty."""
    if node is None:
        return None
    try:
        if attribute_name in _TEXT_CONTENT:
            value = node.text(deep=True)
        else:
            value = node.attributes.get(attribute_name)
    except _ACCESS_ERRORS:
        return None
    if not value:
        return None
    value = value.strip()
    return value or None


def extract_text(node: LexborNode | None) -> str | None:
    return extract_attribute(node, "textContent")


def extract_numeric(text: str | None) -> int | None:
    """First run of digits in *text* as an int."""
    if not text:
        return None
    match = _INTEGER.search(text)
    return int(match.group()) if match else None


def extract_count(text: str | None) -> int | None:
    """Integer from a count with thousands separators ("1.234", "1 234")."""
    if not text:
        return None
    return extract_numeric(_NUMBER_NOISE.sub("", text))


def extract_digit(text: str | None) -> int | None:
    """First single digit in *text* (star classes like ``stars-4``)."""
    if not text:
        return None
    match = _DIGIT.search(text)
    return int(match.group()) if match else None


def extract_decimal(text: object) -> float | None:
    """Decimal number with either ``.`` or ``,`` as the separator."""
    if text is None:
        return None
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        return float(text)
    match = _DECIMAL.search(str(text))
    if match is None:
        return None
    return float(match.group().replace(",", "."))


def extract_css_url(style: str | None) -> str | None:
    """URL inside a CSS ``url(...)`` value."""
    if not style:
        return None
    match = _CSS_URL.search(style)
    return match.group(2) or None if match else None


def collapse_whitespace(text: str | None) -> str | None:
    if not text:
        return None
    collapsed = _WHITESPACE.sub(" ", text).strip()
    return collapsed or None


def first_text_child(node: LexborNode | None) -> str | None:
    """Text of the first child (element or text node) that has any."""
    if node is None:
        return None
    try:
        child = node.child
        while child is not None:
            text = child.text(deep=True).strip()
            if text:
                return text
            child = child.next
    except _ACCESS_ERRORS:
        return None
    return None


T = TypeVar("T")

Strategy = Callable[[Queryable], T | None]


@dataclass(frozen=True)
class ExtractionRule(Generic[T]):
    """Named fallback chain: strategies are tried in order until one yields."""

    name: str
    strategies: tuple[Strategy[T], ...]

    def apply(self, node: Queryable | None) -> T | None:
        if node is None:
            return None
        for strategy in self.strategies:
            value = strategy(node)
            if value is not None:
                return value
        logger.debug("Extraction rule %s found nothing", self.name)
        return None


def _identity(value: str) -> str:
    return value


def text_at(
    selector: str | None,
    parse: Callable[[str], object] = _identity,
) -> Strategy:
    """Text of the first match of *selector* (or of the node itself), parsed."""

    def strategy(node: Queryable) -> object:
        target = select(node, selector) if selector else node
        text = extract_text(target)  # type: ignore[arg-type]
        return parse(text) if text is not None else None

    return strategy


def attribute_at(
    selector: str | None,
    attribute: str,
    parse: Callable[[str], object] = _identity,
) -> Strategy:
    """Attribute of the first match of *selector* (or of the node itself), parsed."""

    def strategy(node: Queryable) -> object:
        target = select(node, selector) if selector else node
        value = extract_attribute(target, attribute)  # type: ignore[arg-type]
        return parse(value) if value is not None else None

    return strategy


def count_of(selector: str) -> Strategy[int]:
    """Number of matches of *selector*; None when there are none."""

    def strategy(node: Queryable) -> int | None:
        return len(select_all(node, selector)) or None

    return strategy
