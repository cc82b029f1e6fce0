import json
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Callable

import structlog

logger = structlog.get_logger()

DEFAULT_SETTINGS_PATH = Path.home() / ".config" / "claude-tokens" / "settings.json"

# (lower, upper) bounds for the two poll intervals in seconds
IDLE_INTERVAL_BOUNDS = (10, 300)
ACTIVE_INTERVAL_BOUNDS = (1, 60)


def _clamp(value: "int", bounds: "tuple[int, int]") -> "int":
    lower, upper = bounds
    return max(lower, min(upper, value))


@dataclass
class Settings:
    """
    Settings are the user-editable widget settings plus the two
    last-used counters written back after every successful poll.
    """

    session_cookie: "str" = ""
    show_numbers: "bool" = True
    # seconds between polls when usage is not moving
    poll_interval_idle: "int" = 60
    # seconds between polls while tokens are being consumed
    poll_interval_active: "int" = 10
    last_session_used: "int" = 0
    last_weekly_used: "int" = 0

    @classmethod
    def from_dict(cls, raw: "dict[str, Any]") -> "Settings":
        """
        builds Settings from a decoded settings file, falling back
        to defaults for missing or mistyped values and clamping the
        intervals to their allowed range.
        """
        defaults = cls()
        values: "dict[str, Any]" = {}
        for f in fields(cls):
            default = getattr(defaults, f.name)
            value = raw.get(f.name, default)
            if isinstance(default, bool):
                value = value if isinstance(value, bool) else default
            elif isinstance(default, int):
                if isinstance(value, bool) or not isinstance(value, int):
                    value = default
            elif not isinstance(value, str):
                value = default
            values[f.name] = value

        settings = cls(**values)
        settings.poll_interval_idle = _clamp(
            settings.poll_interval_idle, IDLE_INTERVAL_BOUNDS
        )
        settings.poll_interval_active = _clamp(
            settings.poll_interval_active, ACTIVE_INTERVAL_BOUNDS
        )
        return settings


class SettingsStore:
    """
    SettingsStore keeps Settings in a JSON file and notifies
    subscribers when the effective credential changes.

    A credential given through the environment takes precedence
    over the one stored in the file.
    """

    def __init__(
        self,
        path: "Path" = DEFAULT_SETTINGS_PATH,
        credential_override: "str" = "",
    ) -> "None":
        self._path = path
        self._credential_override = credential_override
        self._settings: "Settings" = self._read()
        self._handlers: "dict[int, Callable[[], None]]" = {}
        self._next_handler_id = 1

    @property
    def path(self) -> "Path":
        return self._path

    @property
    def settings(self) -> "Settings":
        return self._settings

    @property
    def credential(self) -> "str":
        return self._credential_override or self._settings.session_cookie

    def _read(self) -> "Settings":
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("settings_file_missing", path=str(self._path))
            return Settings()
        except (OSError, ValueError) as exc:
            logger.warning(
                "settings_file_unreadable", path=str(self._path), error=str(exc)
            )
            return Settings()

        if not isinstance(raw, dict):
            logger.warning("settings_file_not_an_object", path=str(self._path))
            return Settings()
        return Settings.from_dict(raw)

    def connect(self, callback: "Callable[[], None]") -> "int":
        """
        subscribes callback to credential changes and returns an id
        for disconnect().
        """
        handler_id = self._next_handler_id
        self._next_handler_id += 1
        self._handlers[handler_id] = callback
        return handler_id

    def disconnect(self, handler_id: "int") -> "None":
        self._handlers.pop(handler_id, None)

    def _notify_credential_changed(self) -> "None":
        for callback in list(self._handlers.values()):
            callback()

    def reload(self) -> "bool":
        """
        re-reads the settings file. Returns True, after notifying
        subscribers, when the effective credential changed.
        """
        previous = self.credential
        self._settings = self._read()
        changed = self.credential != previous
        logger.info("settings_reloaded", credential_changed=changed)
        if changed:
            self._notify_credential_changed()
        return changed

    def set_credential(self, credential: "str") -> "None":
        previous = self.credential
        self._settings.session_cookie = credential
        self.save()
        if self.credential != previous:
            self._notify_credential_changed()

    def set_last_used(self, session_used: "int", weekly_used: "int") -> "None":
        """
        persists the last observed usage so the activity check
        survives a restart.
        """
        if (
            self._settings.last_session_used == session_used
            and self._settings.last_weekly_used == weekly_used
        ):
            return
        self._settings.last_session_used = session_used
        self._settings.last_weekly_used = weekly_used
        self.save()

    def save(self) -> "None":
        """
        writes the settings atomically: a temp file in the same
        directory is replaced over the target.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=".settings-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(asdict(self._settings), tmp, indent=2)
                tmp.write("\n")
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
