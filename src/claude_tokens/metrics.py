from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from claude_tokens.models import UsageSnapshot, Window


class MetricsUpdater:
    """
    applies snapshots and poll outcomes to Prometheus metrics.
     - used / limit / usage_ratio: latest reading per window.
     - poll_errors_total: failed cycles, labeled by error kind.
     - poll_duration_seconds: wall time of each cycle.
     - poll_interval_seconds: delay armed for the next cycle.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._used: "Gauge" = Gauge(
            "claude_tokens_used",
            "Tokens used in the current quota window",
            ["window"],
            registry=registry,
        )
        self._limit: "Gauge" = Gauge(
            "claude_tokens_limit",
            "Tokens allowed in the current quota window",
            ["window"],
            registry=registry,
        )
        self._ratio: "Gauge" = Gauge(
            "claude_tokens_usage_ratio",
            "Used over limit for the current quota window",
            ["window"],
            registry=registry,
        )
        self._poll_errors: "Counter" = Counter(
            "claude_tokens_poll_errors_total",
            "Total number of failed poll cycles by error kind",
            ["kind"],
            registry=registry,
        )
        self._poll_duration: "Histogram" = Histogram(
            "claude_tokens_poll_duration_seconds",
            "Duration of poll cycles",
            registry=registry,
        )
        self._poll_interval: "Gauge" = Gauge(
            "claude_tokens_poll_interval_seconds",
            "Delay before the next poll cycle",
            registry=registry,
        )
        self._last_poll_success: "Gauge" = Gauge(
            "claude_tokens_last_poll_success_timestamp_seconds",
            "Unix timestamp of the last successful poll",
            registry=registry,
        )

    def update_snapshot(self, snapshot: "UsageSnapshot") -> "None":
        for window in Window:
            reading = snapshot.window(window)
            self._used.labels(window=window.value).set(reading.used)
            self._limit.labels(window=window.value).set(reading.limit)
            self._ratio.labels(window=window.value).set(reading.ratio)

    def inc_poll_error(self, kind: "str") -> "None":
        self._poll_errors.labels(kind=kind).inc()

    def observe_poll_duration(self, duration_seconds: "float") -> "None":
        self._poll_duration.observe(duration_seconds)

    def set_poll_interval(self, seconds: "float") -> "None":
        self._poll_interval.set(seconds)

    def set_last_poll_success(self, timestamp: "float") -> "None":
        self._last_poll_success.set(timestamp)


class MetricsSink:
    """
    MetricsSink is a presentation sink that exports the readings
    instead of drawing them.
    """

    def __init__(self, updater: "MetricsUpdater") -> "None":
        self._updater = updater

    def show_status(self, message: "str") -> "None":
        pass

    def show_error(self, message: "str") -> "None":
        pass

    def show_usage(
        self,
        snapshot: "UsageSnapshot",
        show_numbers: "bool",
        worst_percent: "int",
    ) -> "None":
        self._updater.update_snapshot(snapshot)
