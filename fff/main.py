"""
Entrypoint: load .env and config, init logging, build the shared client,
feed stdin through the runner, handle interrupts.
"""

import asyncio
import signal
import sys
from typing import List, Optional, TextIO

import structlog
from dotenv import load_dotenv

from .cli import parse_args, settings_from_args
from .config import Settings
from .fetcher import Fetcher, new_client
from .log import setup_logging
from .output import Reporter
from .source import read_urls
from .storage import ArtifactStore
from .worker import Runner

logger = structlog.get_logger(__name__)

EXIT_INTERRUPTED = 130
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_signal_handlers(runner: Runner) -> list:
    loop = asyncio.get_running_loop()
    installed = []
    for signum in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(signum, runner.stop)
        except (NotImplementedError, RuntimeError, ValueError):
            # not available on this platform/thread
            continue
        installed.append(signum)
    return installed


def _remove_signal_handlers(signums: list):
    loop = asyncio.get_running_loop()
    for signum in signums:
        loop.remove_signal_handler(signum)


async def run(settings: Settings, stdin: TextIO, stdout: TextIO, transport=None) -> Runner:
    """Run one fetch job. Returns the runner so callers can read its stats."""
    logger.info(
        "starting",
        mode="artifact" if settings.output_dir else "summary",
        output_dir=settings.output_dir,
        proxy=settings.proxy,
        keep_alive=settings.keep_alive,
        concurrency=settings.concurrency,
        delay=settings.delay,
    )
    client = new_client(
        settings.keep_alive,
        settings.proxy,
        timeout=settings.timeout,
        connect_timeout=settings.connect_timeout,
        max_idle_connections=settings.max_idle_connections,
        idle_timeout=settings.idle_timeout,
        tcp_keepalive_interval=settings.tcp_keepalive_interval,
        transport=transport,
    )
    async with client:
        runner = Runner(
            fetcher=Fetcher(client, timeout=settings.timeout),
            criteria=settings.filter_criteria,
            reporter=Reporter(stdout),
            store=ArtifactStore(settings.output_dir) if settings.output_dir else None,
            method=settings.method,
            body=settings.body,
            headers=settings.headers,
            delay=settings.delay,
            concurrency=settings.concurrency,
        )
        installed = _install_signal_handlers(runner)
        try:
            await runner.run(read_urls(stdin))
        finally:
            _remove_signal_handlers(installed)
    return runner


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the fff command."""
    load_dotenv()
    args = parse_args(argv)

    try:
        settings = settings_from_args(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"fff: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level, settings.log_format)
    sys.stdin.reconfigure(errors="replace")

    runner = asyncio.run(run(settings, sys.stdin, sys.stdout))
    # per-task failures are reported per line, not in the exit status
    return EXIT_INTERRUPTED if runner.interrupted else 0


if __name__ == "__main__":
    sys.exit(main())
