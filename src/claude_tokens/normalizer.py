import math
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

import structlog

from claude_tokens.models import QuotaWindow, UsageSnapshot, Window

logger = structlog.get_logger()

# leading integer of a string, the way a lenient parseInt reads it
_INT_PREFIX = re.compile(r"\s*([+-]?[0-9]+)")

_SESSION = re.compile(r"5.hour|5hour|window", re.IGNORECASE)
_SESSION_OR_NAMED = re.compile(r"5.hour|5hour|session|window", re.IGNORECASE)
_WEEKLY = re.compile(r"week", re.IGNORECASE)

_FLAT_SESSION_KEY = re.compile(r"5.?hour", re.IGNORECASE)
_FLAT_WEEKLY_KEY = re.compile(r"week", re.IGNORECASE)
_FLAT_USED = re.compile(r"used", re.IGNORECASE)
_FLAT_LIMIT = re.compile(r"limit|total", re.IGNORECASE)


def safe_int(value: "Any") -> "int":
    """
    parses value as an integer, returning 0 for anything that
    does not yield a finite number. Floats and numeric strings
    are truncated ("123.7" -> 123).
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        match = _INT_PREFIX.match(value)
        return int(match.group(1)) if match else 0
    return 0


def _first(entry: "dict[str, Any]", *aliases: "str") -> "Any":
    for alias in aliases:
        value = entry.get(alias)
        if value is not None:
            return value
    return None


def _reset(entry: "dict[str, Any]", *aliases: "str") -> "str | None":
    value = _first(entry, *aliases)
    return None if value is None else str(value)


def _rate_limit_entries(data: "dict[str, Any]") -> "list[Any]":
    status = data.get("rate_limit_status")
    if isinstance(status, list):
        return status
    if isinstance(status, dict):
        return list(status.values())
    return []


def _quota_entries(data: "dict[str, Any]") -> "list[Any]":
    quotas = _first(data, "quotas", "limits", "usage_limits")
    return quotas if isinstance(quotas, list) else []


def _rate_limit_reading(entry: "dict[str, Any]") -> "QuotaWindow":
    remaining = safe_int(_first(entry, "remaining", "tokens_remaining"))
    total = safe_int(_first(entry, "total", "tokens_total", "limit"))
    return QuotaWindow(
        used=max(total - remaining, 0),
        limit=total,
        reset_at=_reset(entry, "resetsAt", "reset_at", "resets_at"),
    )


def _quota_reading(entry: "dict[str, Any]") -> "QuotaWindow":
    return QuotaWindow(
        used=safe_int(_first(entry, "used", "tokens_used")),
        limit=safe_int(_first(entry, "limit", "tokens_limit", "total")),
        reset_at=_reset(entry, "reset_at", "resetsAt"),
    )


@dataclass(frozen=True, slots=True)
class _SchemaRule:
    """
    one list-shaped response schema: where its entries live, how
    an entry names its window, which window each name maps to
    (first matching pattern wins) and how a reading is pulled out.
    """

    name: "str"
    locate: "Callable[[dict[str, Any]], list[Any]]"
    kind_keys: "tuple[str, ...]"
    windows: "tuple[tuple[re.Pattern[str], Window], ...]"
    extract: "Callable[[dict[str, Any]], QuotaWindow]"

    def readings(self, data: "dict[str, Any]") -> "dict[Window, QuotaWindow]":
        found: "dict[Window, QuotaWindow]" = {}
        for entry in self.locate(data):
            if not isinstance(entry, dict):
                continue
            kind = _first(entry, *self.kind_keys)
            if not isinstance(kind, str):
                continue
            for pattern, window in self.windows:
                if pattern.search(kind):
                    # within one schema the last matching entry wins
                    found[window] = self.extract(entry)
                    break
        return found


_RULES: "tuple[_SchemaRule, ...]" = (
    # {"rate_limit_status": {"message_limit": {"type": "window5Hour", ...}}}
    _SchemaRule(
        name="rate_limit_status",
        locate=_rate_limit_entries,
        kind_keys=("type",),
        windows=((_SESSION, Window.SESSION), (_WEEKLY, Window.WEEKLY)),
        extract=_rate_limit_reading,
    ),
    # {"quotas": [{"window": "5hour", "used": N, "limit": N}, ...]}
    _SchemaRule(
        name="quota_list",
        locate=_quota_entries,
        kind_keys=("window", "type", "period"),
        windows=((_SESSION_OR_NAMED, Window.SESSION), (_WEEKLY, Window.WEEKLY)),
        extract=_quota_reading,
    ),
)


class _WindowBuilder:
    """
    accumulates one window. A field is only written while it is
    still at its default, so earlier schemas take precedence.
    """

    def __init__(self) -> "None":
        self.used = 0
        self.limit = 1
        self.reset_at: "str | None" = None

    @property
    def limit_unset(self) -> "bool":
        return self.limit <= 1

    def fill_used(self, used: "int") -> "None":
        if self.used == 0:
            self.used = used

    def fill_limit(self, limit: "int") -> "None":
        # a non-positive limit is no better than the default
        if self.limit_unset and limit > 0:
            self.limit = limit

    def fill(self, reading: "QuotaWindow") -> "None":
        self.fill_used(reading.used)
        self.fill_limit(reading.limit)
        if self.reset_at is None:
            self.reset_at = reading.reset_at

    def build(self) -> "QuotaWindow":
        return QuotaWindow(used=self.used, limit=self.limit, reset_at=self.reset_at)


def _apply_flat_keys(
    items: "Iterable[tuple[Any, Any]]",
    builders: "dict[Window, _WindowBuilder]",
) -> "None":
    # token_5hour_used / token_5hour_limit / weekly_tokens_total ...
    patterns = [
        (pattern, window)
        for pattern, window in (
            (_FLAT_SESSION_KEY, Window.SESSION),
            (_FLAT_WEEKLY_KEY, Window.WEEKLY),
        )
        # windows whose limit an earlier schema already found are skipped
        if builders[window].limit_unset
    ]
    for key, value in items:
        if not isinstance(key, str):
            continue
        for pattern, window in patterns:
            if not pattern.search(key):
                continue
            if _FLAT_USED.search(key):
                builders[window].fill_used(safe_int(value))
            if _FLAT_LIMIT.search(key):
                builders[window].fill_limit(safe_int(value))


def normalize(data: "Any", fetched_at: "float | None" = None) -> "UsageSnapshot":
    """
    normalizes a rate limit payload of unknown shape into a
    UsageSnapshot. Never raises: anything unrecognized leaves the
    window at used=0, limit=1, reset_at=None.

    Schemas are applied in a fixed order and later ones only fill
    what earlier ones left at the default:

    1. rate_limit_status entries (remaining/total),
    2. quotas/limits/usage_limits list (used/limit),
    3. flat top-level keys, for each window whose limit is still
       unknown.
    """
    builders = {window: _WindowBuilder() for window in Window}

    if isinstance(data, dict):
        for rule in _RULES:
            readings = rule.readings(data)
            if readings:
                logger.debug(
                    "usage_schema_matched",
                    schema=rule.name,
                    windows=[window.value for window in readings],
                )
            for window, reading in readings.items():
                builders[window].fill(reading)

        _apply_flat_keys(data.items(), builders)

    return UsageSnapshot(
        session=builders[Window.SESSION].build(),
        weekly=builders[Window.WEEKLY].build(),
        fetched_at=time.time() if fetched_at is None else fetched_at,
    )
