import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import structlog

from claude_tokens.models import QuotaWindow, UsageSnapshot, Window

logger = structlog.get_logger()

# px width of a bar track in the panel
BAR_TRACK_WIDTH = 110
# fill ratio is capped so a far-over-limit bar still reads as "over"
MAX_FILL_RATIO = 1.5

WARNING_RATIO = 0.8
CRITICAL_RATIO = 1.0


class IconState(enum.Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


def icon_state(ratio: "float") -> "IconState":
    if ratio >= CRITICAL_RATIO:
        return IconState.CRITICAL
    if ratio >= WARNING_RATIO:
        return IconState.WARNING
    return IconState.NORMAL


def panel_icon(snapshot: "UsageSnapshot") -> "IconState":
    """
    picks the panel icon from the unrounded worst ratio, so the
    icon agrees with the style of the fuller bar.
    """
    return icon_state(snapshot.worst_ratio)


def format_tokens(n: "int") -> "str":
    """
    shortens large token counts: 1234567 -> "1.2M", 48000 -> "48k".
    """
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{round(n / 1_000)}k"
    return str(n)


def format_reset(iso: "str") -> "str":
    """
    renders an ISO-8601 timestamp as local "Jan 1, 14:30". The raw
    string is returned when it cannot be parsed.
    """
    try:
        # fromisoformat only accepts a trailing "Z" from 3.11 on
        moment = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return iso

    local = moment.astimezone()
    return f"{local:%b} {local.day}, {local:%H:%M}"


@dataclass(frozen=True, slots=True)
class BarState:
    ratio: "float"
    fill_width: "int"
    style: "IconState"
    numbers: "str"


def bar_state(
    window: "QuotaWindow",
    show_numbers: "bool",
    track_width: "int" = BAR_TRACK_WIDTH,
) -> "BarState":
    """
    computes what one progress bar should show for window. The
    visual ratio is capped at 1.5 and the fill never overruns
    the track.
    """
    ratio = min(window.ratio, MAX_FILL_RATIO)
    fill_width = round(min(ratio, 1.0) * track_width)
    numbers = (
        f" {format_tokens(window.used)} / {format_tokens(window.limit)}"
        if show_numbers
        else ""
    )
    return BarState(
        ratio=ratio,
        fill_width=fill_width,
        style=icon_state(ratio),
        numbers=numbers,
    )


_RESET_LABELS: "dict[Window, tuple[str, str]]" = {
    # (menu label, tooltip label)
    Window.SESSION: ("5h resets:", "5h window resets:"),
    Window.WEEKLY: ("7d resets:", "Weekly quota resets:"),
}


def _reset_text(reset_at: "str | None") -> "str":
    return format_reset(reset_at) if reset_at else "Unknown"


def menu_lines(snapshot: "UsageSnapshot") -> "list[str]":
    """
    builds the dropdown detail lines: one usage line per window,
    the reset times, and when the data was fetched.
    """
    session, weekly = snapshot.session, snapshot.weekly
    lines = [
        f"5-hour window: {format_tokens(session.used)} / "
        f"{format_tokens(session.limit)} tokens ({session.percent}%)",
        f"Weekly quota:  {format_tokens(weekly.used)} / "
        f"{format_tokens(weekly.limit)} tokens ({weekly.percent}%)",
    ]
    for window in Window:
        label = _RESET_LABELS[window][0]
        lines.append(f"{label}  {_reset_text(snapshot.window(window).reset_at)}")

    updated = datetime.fromtimestamp(snapshot.fetched_at).astimezone()
    lines.append(f"Last updated: {format_reset(updated.isoformat())}")
    return lines


def tooltip_text(snapshot: "UsageSnapshot") -> "str":
    return "\n".join(
        f"{_RESET_LABELS[window][1]} {_reset_text(snapshot.window(window).reset_at)}"
        for window in Window
    )


class PresentationSink(Protocol):
    """
    PresentationSink is what the scheduler renders to. Each
    cycle ends in exactly one show_error() or show_usage() call.
    """

    def show_status(self, message: "str") -> "None": ...

    def show_error(self, message: "str") -> "None": ...

    def show_usage(
        self,
        snapshot: "UsageSnapshot",
        show_numbers: "bool",
        worst_percent: "int",
    ) -> "None": ...


class LogSink:
    """
    LogSink renders the widget state as structured log events,
    one per bar plus the menu and tooltip text.
    """

    def __init__(self) -> "None":
        self.status: "str" = ""
        self.last_snapshot: "UsageSnapshot | None" = None
        self.icon: "IconState" = IconState.NORMAL

    def show_status(self, message: "str") -> "None":
        self.status = message
        logger.info("status", message=message)

    def show_error(self, message: "str") -> "None":
        self.status = message
        self.last_snapshot = None
        logger.warning("status_error", message=message)

    def show_usage(
        self,
        snapshot: "UsageSnapshot",
        show_numbers: "bool",
        worst_percent: "int",
    ) -> "None":
        self.status = "Claude token usage"
        self.last_snapshot = snapshot
        self.icon = panel_icon(snapshot)
        for window in Window:
            reading = snapshot.window(window)
            bar = bar_state(reading, show_numbers)
            logger.info(
                "usage_bar",
                window=window.value,
                percent=reading.percent,
                fill_width=bar.fill_width,
                style=bar.style.value,
                numbers=bar.numbers.strip() or None,
            )
        logger.info(
            "usage_menu",
            icon=self.icon.value,
            worst_percent=worst_percent,
            menu=menu_lines(snapshot),
            tooltip=tooltip_text(snapshot),
        )


class CompositeSink:
    """
    fans every event out to several sinks.
    """

    def __init__(self, sinks: "list[PresentationSink]") -> "None":
        self._sinks = sinks

    def show_status(self, message: "str") -> "None":
        for sink in self._sinks:
            sink.show_status(message)

    def show_error(self, message: "str") -> "None":
        for sink in self._sinks:
            sink.show_error(message)

    def show_usage(
        self,
        snapshot: "UsageSnapshot",
        show_numbers: "bool",
        worst_percent: "int",
    ) -> "None":
        for sink in self._sinks:
            sink.show_usage(snapshot, show_numbers, worst_percent)
