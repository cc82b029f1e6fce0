import os
from dataclasses import dataclass, field
from pathlib import Path

from claude_tokens.fetcher import CLAUDE_BASE_URL
from claude_tokens.settings import DEFAULT_SETTINGS_PATH


@dataclass
class Config:
    # listen_address: format ":9186" or
    # "127.0.0.1:9186", empty disables the metrics server
    listen_address: "str" = ":9186"
    log_level: "str" = "info"
    # "console" or "json"
    log_format: "str" = "console"

    settings_path: "Path" = field(default_factory=lambda: DEFAULT_SETTINGS_PATH)
    base_url: "str" = CLAUDE_BASE_URL
    # overrides the credential stored in the settings file
    session_key: "str" = ""

    # run a single cycle and exit
    once: "bool" = False
    # only verify the credential against the account endpoint
    check: "bool" = False

    @classmethod
    def from_env(cls) -> "Config":
        settings_path = os.environ.get("CLAUDE_TOKENS_SETTINGS", "")
        return cls(
            settings_path=Path(settings_path) if settings_path else DEFAULT_SETTINGS_PATH,
            base_url=os.environ.get("CLAUDE_TOKENS_BASE_URL", "") or CLAUDE_BASE_URL,
            session_key=os.environ.get("CLAUDE_SESSION_KEY", "").strip(),
        )

    @property
    def metrics_enabled(self) -> "bool":
        return bool(self.listen_address)
