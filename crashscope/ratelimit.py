"""Tools to work with rate limits imposed by the event ingestion service."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Any

CATEGORY_ALL = ""
CATEGORY_ERROR = "error"
CATEGORY_TRANSACTION = "transaction"

KNOWN_CATEGORIES = frozenset({CATEGORY_ALL, CATEGORY_ERROR, CATEGORY_TRANSACTION})

DEFAULT_RETRY_AFTER = timedelta(minutes=1)

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_MAX_SECONDS = (2**63 - 1) // 1_000_000_000
_MAX_INT64 = 2**63 - 1

_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_HEX_RE = re.compile(
    r"[+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)[pP][+-]?[0-9]+"
)
_SPECIAL_RE = re.compile(r"[+-]?(?:infinity|inf|nan)", re.IGNORECASE)
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_RFC1123_RE = re.compile(
    r"(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun), "
    r"([0-9]{2}) "
    r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec) "
    r"([0-9]{4}) "
    r"([0-9]{2}):([0-9]{2}):([0-9]{2}) "
    r"[A-Z]{3,5}"
)
_MONTHS = {
    name: number
    for number, name in enumerate(
        ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
         "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
        start=1,
    )
}


def category_name(category: str) -> str:
    """Return the category formatted for debugging."""
    if category == CATEGORY_ALL:
        return "CategoryAll"
    return "Category" + "".join(word.title() for word in category.split())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Deadline:
    """An instant when a rate limit expires; the default is "no deadline"."""

    when: datetime = field(default=_ZERO_TIME)

    def __post_init__(self) -> None:
        if self.when.tzinfo is None:
            object.__setattr__(self, "when", self.when.astimezone())

    def after(self, other: Deadline) -> bool:
        """Report whether this deadline is after ``other``."""
        return self.when > other.when

    def __str__(self) -> str:
        return str(self.when)


NO_DEADLINE = Deadline()


class InvalidRetryAfter(ValueError):
    """A retry-after value could not be parsed.

    ``deadline`` holds the fallback deadline to use, when there is one.
    """

    def __init__(self, message: str, deadline: Deadline | None = None) -> None:
        super().__init__(message)
        self.deadline = deadline


class RateLimits(dict):
    """Maps categories to rate limit deadlines.

    A rate limit is in effect for a category if either its own deadline or
    the deadline of the special ``CATEGORY_ALL`` has not yet expired.
    """

    def deadline(self, category: str) -> Deadline:
        """Return the later of the category's and ``CATEGORY_ALL``'s deadline."""
        category_deadline = self.get(category, NO_DEADLINE)
        all_deadline = self.get(CATEGORY_ALL, NO_DEADLINE)
        if category_deadline.after(all_deadline):
            return category_deadline
        return all_deadline

    def is_rate_limited(self, category: str, now: datetime | None = None) -> bool:
        """Return True if the category is rate limited at ``now``."""
        if now is None:
            now = _utc_now()
        return self.deadline(category).after(Deadline(now))

    def merge(self, other: Mapping[str, Deadline]) -> None:
        """Merge ``other`` in place, keeping the furthest deadline per category."""
        for category, deadline in other.items():
            if deadline.after(self.get(category, NO_DEADLINE)):
                self[category] = deadline


def _header(headers: Any, name: str) -> str:
    if not headers:
        return ""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            if isinstance(value, (list, tuple)):
                return value[0] if value else ""
            return value
    return ""


def from_response(
    status_code: int, headers: Any = None, now: datetime | None = None
) -> RateLimits:
    """Build a rate limit map from an HTTP response's status and headers."""
    if now is None:
        now = _utc_now()
    limits = _header(headers, "X-Sentry-Rate-Limits")
    if limits:
        return parse_x_sentry_rate_limits(limits, now)
    if status_code == HTTPStatus.TOO_MANY_REQUESTS:
        try:
            deadline = parse_retry_after(_header(headers, "Retry-After"), now)
        except InvalidRetryAfter as exc:
            deadline = exc.deadline
        return RateLimits({CATEGORY_ALL: deadline})
    return RateLimits()


def parse_x_sentry_rate_limits(s: str, now: datetime | None = None) -> RateLimits:
    """Parse a value of the X-Sentry-Rate-Limits header.

    For example ``"60:transaction, 2700:default;error;security"`` limits
    transactions for 60 seconds and errors for 2700 seconds. Limits for
    unknown categories are ignored.
    """
    if now is None:
        now = _utc_now()
    limits = RateLimits()
    for limit in s.split(","):
        limit = limit.strip()
        if not limit:
            continue
        components = limit.split(":")
        try:
            retry_after = parse_xsrl_retry_after(components[0].strip(), now)
        except InvalidRetryAfter:
            continue
        categories = components[1] if len(components) > 1 else ""
        for raw in categories.split(";"):
            category = raw.strip().lower()
            if category not in KNOWN_CATEGORIES:
                continue
            if retry_after.after(limits.get(category, NO_DEADLINE)):
                limits[category] = retry_after
    return limits


def _parse_float(s: str) -> float:
    if _SPECIAL_RE.fullmatch(s):
        return float(s)
    try:
        if _DECIMAL_RE.fullmatch(s):
            value = float(s)
        elif _HEX_RE.fullmatch(s):
            value = float.fromhex(s)
        else:
            raise InvalidRetryAfter("invalid retry-after value")
    except OverflowError as exc:
        raise InvalidRetryAfter("invalid retry-after value") from exc
    if math.isinf(value):
        raise InvalidRetryAfter("invalid retry-after value")
    return value


def parse_xsrl_retry_after(s: str, now: datetime | None = None) -> Deadline:
    """Parse a retry-after value of the X-Sentry-Rate-Limits header.

    The value is a number of seconds, possibly signed and fractional.
    Negative, special and overflowing values count as zero; fractions are
    rounded up to the next full second.
    """
    if now is None:
        now = _utc_now()
    value = _parse_float(s)
    seconds = math.ceil(value) if math.isfinite(value) and value > 0 else 0
    if seconds > _MAX_SECONDS:
        seconds = 0
    return Deadline(now + timedelta(seconds=seconds))


def _parse_rfc1123(s: str) -> datetime | None:
    match = _RFC1123_RE.fullmatch(s)
    if match is None:
        return None
    day, month, year, hour, minute, second = match.groups()
    try:
        return datetime(
            int(year), _MONTHS[month], int(day),
            int(hour), int(minute), int(second),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def parse_retry_after(s: str, now: datetime | None = None) -> Deadline:
    """Parse a standard Retry-After header value.

    The value is either a non-negative integer number of seconds or an
    RFC 1123 date. On invalid input ``InvalidRetryAfter`` is raised with a
    usable fallback deadline one minute from ``now``.
    """
    if now is None:
        now = _utc_now()
    if s and _INTEGER_RE.fullmatch(s):
        seconds = int(s)
        if 0 <= seconds <= _MAX_INT64:
            try:
                return Deadline(now + timedelta(seconds=seconds))
            except OverflowError:
                pass
    elif s:
        date = _parse_rfc1123(s)
        if date is not None:
            return Deadline(date)
    raise InvalidRetryAfter("invalid input", Deadline(now + DEFAULT_RETRY_AFTER))