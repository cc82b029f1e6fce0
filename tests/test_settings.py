import json
from pathlib import Path

from claude_tokens.settings import Settings, SettingsStore


class TestSettingsFromDict:
    def test_defaults(self) -> "None":
        settings = Settings.from_dict({})
        assert settings == Settings()
        assert settings.poll_interval_idle == 60
        assert settings.poll_interval_active == 10

    def test_clamps_intervals(self) -> "None":
        settings = Settings.from_dict(
            {"poll_interval_idle": 5, "poll_interval_active": 500}
        )
        assert settings.poll_interval_idle == 10
        assert settings.poll_interval_active == 60

    def test_mistyped_values_fall_back(self) -> "None":
        settings = Settings.from_dict(
            {
                "session_cookie": 42,
                "show_numbers": "yes",
                "poll_interval_idle": "90",
                "last_session_used": True,
            }
        )
        assert settings.session_cookie == ""
        assert settings.show_numbers is True
        assert settings.poll_interval_idle == 60
        assert settings.last_session_used == 0


class TestSettingsStore:
    def test_missing_file_uses_defaults(self, tmp_path: "Path") -> "None":
        store = SettingsStore(tmp_path / "absent.json")
        assert store.settings == Settings()
        assert store.credential == ""

    def test_malformed_file_uses_defaults(self, tmp_path: "Path") -> "None":
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        assert SettingsStore(path).settings == Settings()

    def test_override_wins_over_file(self, settings_path: "Path") -> "None":
        store = SettingsStore(settings_path, credential_override="from-env")
        assert store.credential == "from-env"

    def test_set_last_used_is_persisted(self, settings_path: "Path") -> "None":
        store = SettingsStore(settings_path)
        store.set_last_used(1000, 2000)

        raw = json.loads(settings_path.read_text())
        assert raw["last_session_used"] == 1000
        assert raw["last_weekly_used"] == 2000
        # untouched settings survive the rewrite
        assert raw["poll_interval_idle"] == 120

    def test_reload_notifies_on_credential_change(self, settings_path: "Path") -> "None":
        store = SettingsStore(settings_path)
        calls: "list[str]" = []
        store.connect(lambda: calls.append(store.credential))

        assert store.reload() is False
        assert calls == []

        raw = json.loads(settings_path.read_text())
        raw["session_cookie"] = "sk-ant-sid01-new"
        settings_path.write_text(json.dumps(raw))

        assert store.reload() is True
        assert calls == ["sk-ant-sid01-new"]

    def test_disconnect_stops_notifications(self, settings_path: "Path") -> "None":
        store = SettingsStore(settings_path)
        calls: "list[int]" = []
        handler_id = store.connect(lambda: calls.append(1))
        store.disconnect(handler_id)

        store.set_credential("other")

        assert calls == []
        assert SettingsStore(settings_path).credential == "other"
