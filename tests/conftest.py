import json
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from claude_tokens.models import UsageSnapshot
from claude_tokens.settings import SettingsStore


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def settings_path(tmp_path: "Path") -> "Path":
    """
    settings file with a credential and intervals distinct from
    the defaults and from the error backoff.
    """
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "session_cookie": "sk-ant-sid01-test",
                "show_numbers": True,
                "poll_interval_idle": 120,
                "poll_interval_active": 15,
            }
        )
    )
    return path


@pytest.fixture()
def store(settings_path: "Path") -> "SettingsStore":
    return SettingsStore(settings_path)


class RecordingSink:
    """
    A presentation sink that keeps every event it receives.
    """

    def __init__(self) -> "None":
        self.statuses: "list[str]" = []
        self.errors: "list[str]" = []
        self.usages: "list[tuple[UsageSnapshot, bool, int]]" = []

    def show_status(self, message: "str") -> "None":
        self.statuses.append(message)

    def show_error(self, message: "str") -> "None":
        self.errors.append(message)

    def show_usage(
        self,
        snapshot: "UsageSnapshot",
        show_numbers: "bool",
        worst_percent: "int",
    ) -> "None":
        self.usages.append((snapshot, show_numbers, worst_percent))


@pytest.fixture()
def sink() -> "RecordingSink":
    return RecordingSink()
