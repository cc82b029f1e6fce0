import asyncio
import signal

import structlog
from prometheus_client import start_http_server

from claude_tokens.cli import parse_args
from claude_tokens.config import Config
from claude_tokens.errors import FetchError
from claude_tokens.fetcher import ClaudeFetcher
from claude_tokens.identity import resolve_organization
from claude_tokens.logging import setup_logging
from claude_tokens.metrics import MetricsSink, MetricsUpdater
from claude_tokens.presentation import CompositeSink, LogSink, menu_lines
from claude_tokens.scheduler import PollScheduler
from claude_tokens.settings import SettingsStore

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '127.0.0.1:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


async def _check(fetcher: "ClaudeFetcher", store: "SettingsStore") -> "int":
    try:
        org_id = await resolve_organization(fetcher, store.credential)
    except FetchError as exc:
        print(f"✗ {exc.message}")
        return 1
    finally:
        await fetcher.close()

    print(f"✓ Connection successful (organization {org_id})")
    return 0


async def _once(scheduler: "PollScheduler", sink: "LogSink") -> "int":
    try:
        await scheduler.poll_once()
    finally:
        await scheduler.close()

    if sink.last_snapshot is None:
        print(sink.status)
        return 1

    print("\n".join(menu_lines(sink.last_snapshot)))
    return 0


def main() -> "None":
    config: "Config" = parse_args()
    setup_logging(config.log_level, config.log_format)

    store = SettingsStore(config.settings_path, credential_override=config.session_key)
    fetcher = ClaudeFetcher(base_url=config.base_url)
    logger.info(
        "settings_loaded",
        path=str(store.path),
        credential_configured=bool(store.credential),
    )

    if config.check:
        raise SystemExit(asyncio.run(_check(fetcher, store)))

    log_sink = LogSink()
    metrics_updater = MetricsUpdater()
    sink = CompositeSink([log_sink, MetricsSink(metrics_updater)])

    if config.once:

        async def _run_once() -> "int":
            scheduler = PollScheduler(fetcher, store, sink, metrics_updater)
            return await _once(scheduler, log_sink)

        raise SystemExit(asyncio.run(_run_once()))

    if config.metrics_enabled:
        host, port = _parse_listen_address(config.listen_address)
        start_http_server(port, addr=host)
        logger.info("metrics_server_started", host=host, port=port)

    async def _run() -> "None":
        scheduler = PollScheduler(fetcher, store, sink, metrics_updater)
        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, signal the scheduler
        # to stop gracefully
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, scheduler.stop)
        # SIGUSR1 polls right away, SIGHUP re-reads the settings file
        loop.add_signal_handler(signal.SIGUSR1, scheduler.refresh)
        loop.add_signal_handler(signal.SIGHUP, store.reload)

        try:
            await scheduler.run()
        finally:
            logger.info("shutting_down")
            await scheduler.close()
            logger.info("shutdown_complete")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
