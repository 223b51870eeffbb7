#!/usr/bin/env python3
"""Command-line entry: wiring of the dashboard and its headless subcommands."""

import argparse
import logging
import os
import sys
import threading
import time
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from config import THEME_NAMES, HoardConfig, load_config, save_config
from application.discovery import DiscoveryAggregator, SearchHistory
from application.jobs import JobCoordinator
from application.messages import AdapterResult, AdapterStarted, MessageChannel
from application.ports import StoreError
from application.session import SessionStateMachine
from core import DiscoverResult, SortKey, sort_results
from infrastructure.file_store import YamlToolStore
from infrastructure.history_store import YamlHistoryStore
from infrastructure.process import SubprocessRunner, install_command
from infrastructure.readme import GithubReadmeFetcher
from infrastructure.sources import HttpClient, build_adapters

logger = logging.getLogger("hoard")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
HEADLESS_TIMEOUT = 300.0


def configure_logging(log_file: Optional[str], interactive: bool) -> None:
    """Send ``hoard.*`` logs to a file; never to the terminal the TUI draws on."""
    level_name = os.environ.get("HOARD_LOG_LEVEL", "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger("hoard")
    root.setLevel(level)
    root.propagate = False
    for handler in list(root.handlers):
        root.removeHandler(handler)
    path = log_file or os.environ.get("HOARD_LOG_FILE", "").strip()
    if path:
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(target, encoding="utf-8")
    elif interactive:
        handler = logging.NullHandler()
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


@dataclass
class Services:
    config: HoardConfig
    channel: MessageChannel
    store: YamlToolStore
    jobs: JobCoordinator
    aggregator: DiscoveryAggregator
    runner: SubprocessRunner
    readme: GithubReadmeFetcher


def _installed_names(store: YamlToolStore) -> List[str]:
    return [tool.name for tool in store.snapshot_tools() if tool.installed]


def build_services(config: HoardConfig, channel: Optional[MessageChannel] = None) -> Services:
    channel = channel or MessageChannel()
    store = YamlToolStore(Path(config.store_path))
    runner = SubprocessRunner()
    client = HttpClient(timeout=config.http_timeout)
    adapters, ai = build_adapters(config, client, runner, installed=lambda: _installed_names(store))
    jobs = JobCoordinator(channel, config.max_jobs)
    history = SearchHistory(config.history_size, YamlHistoryStore(Path(config.history_path), config.history_size))
    aggregator = DiscoveryAggregator(jobs, adapters, history=history, ai_adapter=ai)
    return Services(config, channel, store, jobs, aggregator, runner, GithubReadmeFetcher(client))


# ------------------------------------------------------------------ commands
def cmd_tui(args) -> int:
    from .tui_app import HoardTUI

    config = load_config()
    if args.theme:
        config.theme = args.theme
    services = build_services(config)
    session = SessionStateMachine(
        services.store,
        services.jobs,
        services.aggregator,
        config=config,
        runner=services.runner,
        readme=services.readme,
        command_builder=install_command,
        save_config=save_config,
        open_url=webbrowser.open,
    )
    logger.info("starting dashboard, theme %s", config.theme)
    session.load()
    HoardTUI(session, services.channel).run()
    return 0


def _print_results(results: List[DiscoverResult]) -> None:
    if not results:
        print("No results.")
        return
    width = max(len(result.name) for result in results)
    for result in results:
        origins = ",".join(origin.source_id for origin in result.origins)
        stars = f"★{result.stars}" if result.stars else ""
        print(f"{result.name:<{width}}  {origins:<18} {stars:>8}  {result.description}")
        for option in result.install_options:
            print(f"{'':<{width}}    {option.origin.label}: {option.command}")


def cmd_discover(args) -> int:
    config = load_config()
    services = build_services(config)
    aggregator = services.aggregator
    wakeup = threading.Event()
    services.channel.set_wakeup(wakeup.set)
    services.aggregator.history.load()
    sources = args.sources.split(",") if args.sources else config.enabled_sources()
    aggregator.submit(" ".join(args.query), sources, include_ai=args.ai or config.include_ai)
    session = aggregator.session
    deadline = time.monotonic() + HEADLESS_TIMEOUT
    try:
        while not session.complete and time.monotonic() < deadline:
            wakeup.wait(0.2)
            wakeup.clear()
            for message in services.channel.drain():
                if isinstance(message, (AdapterStarted, AdapterResult)):
                    aggregator.accept(message)
                else:
                    services.jobs.handle(message)
    except KeyboardInterrupt:
        aggregator.cancel()
        print("Cancelled.", file=sys.stderr)
    for adapter_id, status in aggregator.progress():
        if status.reason:
            print(f"{aggregator.label_for(adapter_id)}: {status.badge()}", file=sys.stderr)
    key = SortKey.from_string(args.sort) or SortKey.STARS
    _print_results(sort_results(session.results, key))
    aggregator.close()
    services.jobs.cancel_all()
    return 0 if session.complete else 1


def cmd_history(args) -> int:
    config = load_config()
    store = YamlHistoryStore(Path(config.history_path), config.history_size)
    try:
        entries = store.recent(args.limit)
    except StoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    for entry in entries:
        print(entry)
    return 0


def cmd_usage(args) -> int:
    config = load_config()
    store = YamlToolStore(Path(config.store_path))
    try:
        store.record_usage(args.name, args.count)
    except StoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hoard", description="hoard: dashboard for your developer tools")
    parser.add_argument("--log-file", help="write logs to this file (default: $HOARD_LOG_FILE)")
    parser.set_defaults(func=cmd_tui, interactive=True, theme=None)
    sub = parser.add_subparsers(dest="command")

    tui_p = sub.add_parser("tui", help="Open the dashboard")
    tui_p.add_argument("--theme", choices=THEME_NAMES, help="colour theme")
    tui_p.set_defaults(func=cmd_tui, interactive=True)

    dp = sub.add_parser("discover", help="Search the package registries without the dashboard")
    dp.add_argument("query", nargs="+")
    dp.add_argument("--sources", help="comma-separated source ids (default: enabled in config)")
    dp.add_argument("--ai", action="store_true", help="include AI recommendations")
    dp.add_argument("--sort", choices=["stars", "name", "source"], default="stars")
    dp.set_defaults(func=cmd_discover, interactive=False)

    hp = sub.add_parser("history", help="Recent discover queries")
    hp.add_argument("--limit", type=int, default=20)
    hp.set_defaults(func=cmd_history, interactive=False)

    up = sub.add_parser("usage", help="Record uses of a tracked tool")
    up.add_argument("name")
    up.add_argument("--count", type=int, default=1)
    up.set_defaults(func=cmd_usage, interactive=False)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_file, args.interactive)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
