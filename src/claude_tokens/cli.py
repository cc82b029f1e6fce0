import argparse
from pathlib import Path

from claude_tokens.config import Config


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = argparse.ArgumentParser(
        prog="claude-tokens",
        description="Claude session and weekly token usage monitor",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=":9186",
        help="Address to expose metrics on, empty to disable (default: :9186)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default="console",
        choices=["console", "json"],
        help="Log renderer (default: console)",
    )
    parser.add_argument(
        "--settings.path",
        dest="settings_path",
        type=Path,
        default=None,
        help="Settings file (default: $CLAUDE_TOKENS_SETTINGS or "
        "~/.config/claude-tokens/settings.json)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Poll once, print the result and exit",
    )
    mode.add_argument(
        "--check",
        action="store_true",
        help="Test the session cookie against the account endpoint and exit",
    )

    args = parser.parse_args(argv)
    config = Config.from_env()
    config.listen_address = args.listen_address
    config.log_level = args.log_level
    config.log_format = args.log_format
    if args.settings_path is not None:
        config.settings_path = args.settings_path
    config.once = args.once
    config.check = args.check
    return config
