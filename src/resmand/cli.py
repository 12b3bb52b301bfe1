"""Command line entry points.

``resmand`` runs the daemon, ``resmandb`` talks to a running one in the
spirit of ``xrdb``.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Sequence
from typing import Any

from resmand import __version__
from resmand._constants import PROFILE_PREPROCESSORS
from resmand._mqtt import MqttChangePublisher, MqttTarget
from resmand.client import ResmandClient
from resmand.config import ResmandConfig
from resmand.exceptions import ResmandError
from resmand.server import ResmandServer
from resmand.service import ResourceService
from resmand.state.store import format_entry

_logger = logging.getLogger("resmand")


def _setup_logging(level: str, *, verbose: bool = False, quiet: bool = False) -> None:
    if verbose:
        numeric = logging.DEBUG
    elif quiet:
        numeric = logging.WARNING
    else:
        numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ----------------------------------------------------------------------
# Daemon
# ----------------------------------------------------------------------


def _parse_daemon_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="resmand",
        description="Resource configuration daemon.",
    )
    parser.add_argument("filename", nargs="?", help="Config file to load at startup")
    parser.add_argument("--load", metavar="FILE", help="Config file to load at startup (wins over FILENAME)")
    parser.add_argument("--cpp", metavar="PATH", help="Default preprocessor executable")
    parser.add_argument("--nocpp", action="store_true", default=None, help="Do not run files through the preprocessor")
    parser.add_argument(
        "--profile",
        choices=sorted(PROFILE_PREPROCESSORS),
        help="Pick the default preprocessor location of a known distribution",
    )
    parser.add_argument("--socket", metavar="PATH", help="Unix socket to listen on")
    parser.add_argument("--host", help="Listen on TCP at HOST instead of a Unix socket")
    parser.add_argument("--port", type=int, help="TCP port (with --host)")
    parser.add_argument("--service-name", help="Bus service name")
    parser.add_argument("--mqtt-host", help="Mirror ResourcesChanged to this MQTT broker")
    parser.add_argument("--mqtt-port", type=int, help="MQTT broker port")
    parser.add_argument("--mqtt-topic", help="MQTT topic for ResourcesChanged")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _daemon_config(args: argparse.Namespace) -> ResmandConfig:
    overrides: dict[str, Any] = {}
    bootstrap = args.load or args.filename
    if bootstrap:
        overrides["bootstrap_file"] = bootstrap
    _ARG_CONFIG_MAP = {
        "cpp": "preprocessor",
        "nocpp": "disable_preprocessing",
        "socket": "socket_path",
        "host": "host",
        "port": "port",
        "service_name": "service_name",
        "mqtt_host": "mqtt_host",
        "mqtt_port": "mqtt_port",
        "mqtt_topic": "mqtt_topic",
    }
    for arg_name, field_name in _ARG_CONFIG_MAP.items():
        value = getattr(args, arg_name)
        if value is not None:
            overrides[field_name] = value

    if args.profile and "preprocessor" not in overrides:
        overrides["preprocessor"] = ResmandConfig.for_profile(args.profile).preprocessor
    return ResmandConfig.from_env(**overrides)


async def run_daemon(config: ResmandConfig, *, stop_event: asyncio.Event | None = None) -> None:
    """Bootstrap the table, serve it, and return once *stop_event* is set.

    Without *stop_event* the daemon runs until SIGINT or SIGTERM.
    """
    service = ResourceService(config)

    publisher: MqttChangePublisher | None = None
    target = MqttTarget.from_config(config)
    if target is not None:
        publisher = MqttChangePublisher(target, service_name=config.service_name)
        publisher.start()
        service.notifier.subscribe(publisher.publish)

    await service.bootstrap()

    server = ResmandServer(service)
    stop = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await server.start()
        await stop.wait()
        _logger.info("Shutting down")
    finally:
        await server.stop()
        if publisher is not None:
            publisher.stop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``resmand`` daemon."""
    args = _parse_daemon_args(argv)
    try:
        config = _daemon_config(args)
    except ResmandError as exc:
        print(f"resmand: {exc}", file=sys.stderr)
        return 2
    _setup_logging(config.log_level, verbose=args.verbose, quiet=args.quiet)
    asyncio.run(run_daemon(config))
    return 0


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------


def _parse_client_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="resmandb",
        description="Query and modify the resources held by resmand.",
    )
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("-query", nargs="?", const="", metavar="SUBSTR", help="Print resources whose key contains SUBSTR")
    action.add_argument("-get", metavar="KEY", help="Print the value of KEY")
    action.add_argument("-load", metavar="FILE", help="Load FILE, keeping existing resources")
    action.add_argument("-merge", metavar="FILE", help="Merge FILE, overriding existing resources")
    action.add_argument("-set", nargs=2, metavar=("KEY", "VALUE"), help="Set KEY to VALUE")
    action.add_argument("-add", nargs=2, metavar=("KEY", "VALUE"), help="Add KEY unless already defined")
    action.add_argument("-remove", metavar="KEY", help="Remove KEY")
    action.add_argument("-remove-all", action="store_true", help="Remove every resource")
    action.add_argument("-watch", action="store_true", help="Print a line for every ResourcesChanged signal")
    parser.add_argument("-nocpp", action="store_true", help="Do not preprocess the file (-load/-merge)")
    parser.add_argument("-cpp", metavar="PATH", help="Preprocessor to use (-load/-merge)")
    parser.add_argument(
        "-cpp-args",
        default="",
        metavar="ARGS",
        help="Whitespace separated preprocessor arguments; use -cpp-args='-P -DX' form",
    )
    parser.add_argument("-socket", metavar="PATH", help="Daemon socket")
    parser.add_argument("-host", help="Daemon TCP host")
    parser.add_argument("-port", type=int, help="Daemon TCP port")
    parser.add_argument("-service-name", help="Daemon service name")
    parser.add_argument("-v", "-verbose", dest="verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _client_config(args: argparse.Namespace) -> ResmandConfig:
    overrides: dict[str, Any] = {}
    for arg_name, field_name in {
        "socket": "socket_path",
        "host": "host",
        "port": "port",
        "service_name": "service_name",
    }.items():
        value = getattr(args, arg_name)
        if value is not None:
            overrides[field_name] = value
    return ResmandConfig.from_env(**overrides)


async def _ingest(client: ResmandClient, args: argparse.Namespace, path: str, *, overwrite: bool) -> None:
    if args.cpp:
        if overwrite:
            await client.merge_with_preprocessor(path, args.cpp, args.cpp_args)
        else:
            await client.load_with_preprocessor(path, args.cpp, args.cpp_args)
        return
    nocpp = True if args.nocpp else None
    if overwrite:
        await client.merge(path, nocpp)
    else:
        await client.load(path, nocpp)


async def run_client(args: argparse.Namespace, config: ResmandConfig) -> None:
    async with ResmandClient(config) as client:
        if args.query is not None:
            result = await client.query(args.query)
            if result:
                print(result)
        elif args.get is not None:
            print(await client.get_resource(args.get))
        elif args.load is not None:
            await _ingest(client, args, args.load, overwrite=False)
        elif args.merge is not None:
            await _ingest(client, args, args.merge, overwrite=True)
        elif args.set is not None:
            await client.set_resource(*args.set)
        elif args.add is not None:
            await client.add_resource(*args.add)
        elif args.remove is not None:
            removed = await client.remove_one(args.remove)
            if removed is not None:
                print(format_entry(*removed))
        elif args.remove_all:
            await client.remove_all()
        elif args.watch:
            async for event in client.subscribe():
                print(f"ResourcesChanged {event.serial} {event.emitted_at.isoformat()}", flush=True)


def client_main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``resmandb`` client."""
    args = _parse_client_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        asyncio.run(run_client(args, _client_config(args)))
    except ResmandError as exc:
        print(f"resmandb: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0
