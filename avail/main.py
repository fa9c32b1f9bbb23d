"""Entry point for avail: `avail` console script."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from avail import __version__
from avail.config import AvailSettings
from avail.daemon import Daemon, PidFileError
from avail.health.raw_http import RawResponseError, load_raw_response
from avail.runtime import RuntimeLocation, default_config_path, read_pid
from avail.status import StatusReader, StatusReadError, render_statuses
from avail.targets.registry import ConfigError, load_config

console = Console()
err_console = Console(stderr=True)

# Exit codes
CODE_SUCCESS = 0
CODE_GENERAL_ERR = 1
CODE_INVALID_CONFIG = 2
CODE_INVALID_INVOCATION = 3
CODE_INITIALIZATION_FAILED = 4


def _error(message: object) -> None:
    err_console.print(f"[red]error:[/red] {escape(str(message))}", highlight=False)


def _config_path(args: argparse.Namespace, settings: AvailSettings) -> Path:
    if args.config:
        return Path(args.config)
    if settings.config:
        return Path(settings.config)
    return default_config_path()


def _resolve_pid(args: argparse.Namespace, settings: AvailSettings, location: RuntimeLocation) -> int:
    """-P wins, then -p, then the config's pidFile, then the default PID file."""
    if args.pid:
        return args.pid
    if args.pid_file:
        pid_file = Path(args.pid_file)
    else:
        cfg_path = _config_path(args, settings)
        pid_file = location.default_pid_file
        if cfg_path.exists():
            cfg = load_config(cfg_path)
            if cfg.pid_file:
                pid_file = Path(cfg.pid_file)
    try:
        return read_pid(pid_file)
    except (OSError, ValueError) as e:
        raise StatusReadError(f"cannot read PID file {pid_file}: {e}") from e


# ── Commands ─────────────────────────────────────────────────────────────────


async def _serve(daemon: Daemon) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))
    await daemon.run(stop)


def cmd_run(args: argparse.Namespace, settings: AvailSettings, location: RuntimeLocation) -> int:
    try:
        config = load_config(_config_path(args, settings))
    except ConfigError as e:
        _error(e)
        return CODE_INVALID_CONFIG

    daemon = Daemon(config, location)
    try:
        asyncio.run(_serve(daemon))
    except (ConfigError, PidFileError, OSError) as e:
        # probe construction or PID-file claim failed
        _error(e)
        return CODE_INITIALIZATION_FAILED
    return CODE_SUCCESS


def cmd_status(args: argparse.Namespace, settings: AvailSettings, location: RuntimeLocation) -> int:
    try:
        reader = StatusReader(location, _resolve_pid(args, settings, location))
        statuses = reader.statuses(args.titles or None)
    except ConfigError as e:
        _error(e)
        return CODE_INVALID_CONFIG
    except StatusReadError as e:
        _error(e)
        return CODE_GENERAL_ERR
    console.print(render_statuses(statuses))
    return CODE_SUCCESS


def cmd_list(args: argparse.Namespace, settings: AvailSettings, location: RuntimeLocation) -> int:
    try:
        reader = StatusReader(location, _resolve_pid(args, settings, location))
        titles = reader.titles()
    except ConfigError as e:
        _error(e)
        return CODE_INVALID_CONFIG
    except StatusReadError as e:
        _error(e)
        return CODE_GENERAL_ERR
    for title in titles:
        console.print(title, highlight=False, markup=False)
    return CODE_SUCCESS


def cmd_http(args: argparse.Namespace, settings: AvailSettings, location: RuntimeLocation) -> int:
    try:
        response = load_raw_response()
    except RawResponseError as e:
        _error(e)
        return CODE_GENERAL_ERR

    if args.part == "status":
        print(response.status_code)
    elif args.part == "header":
        print(response.headers.get(args.name, ""))
    else:
        sys.stdout.buffer.write(response.content)
        sys.stdout.flush()
    return CODE_SUCCESS


# ── Parser ───────────────────────────────────────────────────────────────────


def _add_pid_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", dest="config", default="", help="config file")
    parser.add_argument("-P", dest="pid", type=int, default=0, help="PID of the running daemon")
    parser.add_argument("-p", dest="pid_file", default="", help="PID file of the running daemon")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="avail", description="HTTP availability monitor")
    parser.add_argument("-v", "--version", action="version", version=__version__)
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="run the daemon")
    run_parser.add_argument("-c", dest="config", default="", help="config file")
    run_parser.set_defaults(func=cmd_run)

    status_parser = sub.add_parser("status", help="show status of sites")
    _add_pid_flags(status_parser)
    status_parser.add_argument("titles", nargs="*", help="only these sites")
    status_parser.set_defaults(func=cmd_status)

    list_parser = sub.add_parser("list", help="list sites")
    _add_pid_flags(list_parser)
    list_parser.set_defaults(func=cmd_list)

    http_parser = sub.add_parser(
        "http",
        help="extract parts of the raw response in $AVAIL_HTTP",
        description="Reads the raw HTTP response named by AVAIL_HTTP (set for exec/shell checks).",
    )
    http_sub = http_parser.add_subparsers(dest="part", required=True)
    http_sub.add_parser("status", help="print the status code")
    header_parser = http_sub.add_parser("header", help="print a header value")
    header_parser.add_argument("name")
    http_sub.add_parser("body", help="print the response body")
    http_parser.set_defaults(func=cmd_http)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on usage errors; keep our own code for that.
        return CODE_SUCCESS if e.code == 0 else CODE_INVALID_INVOCATION

    if not args.command:
        parser.print_help(sys.stderr)
        return CODE_INVALID_INVOCATION

    settings = AvailSettings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    location = RuntimeLocation.resolve(settings.runtime_dir)
    return args.func(args, settings, location)


if __name__ == "__main__":
    sys.exit(main())
