"""aiohttp bus endpoint for :class:`~resmand.service.ResourceService`.

Routes (relative to the configured object path)::

    POST <object_path>/<Method>               call an operation
    GET  <object_path>/properties/Resources   full table
    GET  <object_path>/signals                WebSocket stream of ResourcesChanged
    GET  /                                    service discovery

Calls are dispatched concurrently; the store serializes what needs it.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import os
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aiohttp import WSCloseCode, web
from pydantic import ValidationError

from resmand._constants import INTERFACE_NAME, PROPERTY_RESOURCES, SIGNAL_RESOURCES_CHANGED
from resmand.exceptions import ResmandError, ResourceLoadError
from resmand.models import CallRequest, CallResult, ErrorBody, ErrorReply, ServiceInfo, SignalMessage
from resmand.service import ResourceService

_logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("service", ResourceService)
WEBSOCKETS_KEY = web.AppKey("websockets", weakref.WeakSet)

# Events buffered per signal subscriber before new ones are dropped.
SIGNAL_QUEUE_MAXSIZE = 256


@dataclass(frozen=True)
class _Overload:
    attr: str
    arg_types: tuple[type, ...]
    returns: bool = False


# Bus method name -> argument count -> service method.
OPERATIONS: dict[str, dict[int, _Overload]] = {
    "Load": {
        1: _Overload("load", (str,)),
        2: _Overload("load", (str, bool)),
    },
    "LoadWithPreprocessor": {3: _Overload("load_with_preprocessor", (str, str, str))},
    "Merge": {
        1: _Overload("merge", (str,)),
        2: _Overload("merge", (str, bool)),
    },
    "MergeWithPreprocessor": {3: _Overload("merge_with_preprocessor", (str, str, str))},
    "Query": {1: _Overload("query", (str,), returns=True)},
    "GetResource": {1: _Overload("get_resource", (str,), returns=True)},
    "SetResource": {2: _Overload("set_resource", (str, str))},
    "AddResource": {2: _Overload("add_resource", (str, str))},
    "RemoveOne": {1: _Overload("remove_one", (str,), returns=True)},
    "RemoveAll": {0: _Overload("remove_all", ())},
}


def _error_response(status: int, error_type: str, message: str, path: str | None = None) -> web.Response:
    reply = ErrorReply(error=ErrorBody(type=error_type, message=message, path=path))
    return web.json_response(reply.model_dump(exclude_none=True), status=status)


def _resolve(service: ResourceService, method: str, args: list[Any]) -> tuple[Callable[..., Any], bool]:
    overloads = OPERATIONS.get(method)
    if overloads is None:
        raise KeyError(method)
    overload = overloads.get(len(args))
    if overload is None:
        expected = " or ".join(str(n) for n in sorted(overloads))
        raise TypeError(f"{method} takes {expected} argument(s), got {len(args)}")
    for index, (value, expected_type) in enumerate(zip(args, overload.arg_types, strict=True)):
        if not isinstance(value, expected_type):
            raise TypeError(
                f"{method} argument {index} must be {expected_type.__name__}, got {type(value).__name__}"
            )
    return getattr(service, overload.attr), overload.returns


async def _handle_call(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    method = request.match_info["method"]

    try:
        call = CallRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        return _error_response(400, "InvalidRequest", f"Malformed call body: {exc}")

    try:
        handler, returns = _resolve(service, method, call.args)
    except KeyError:
        return _error_response(404, "UnknownMethod", f"No such method {method!r} on {INTERFACE_NAME}")
    except TypeError as exc:
        return _error_response(400, "InvalidArgs", str(exc))

    _logger.debug("Call %s%s", method, tuple(call.args))
    try:
        result = handler(*call.args)
        if inspect.isawaitable(result):
            result = await result
    except ResourceLoadError as exc:
        return _error_response(422, type(exc).__name__, str(exc), exc.path or None)
    except ResmandError as exc:
        return _error_response(500, type(exc).__name__, str(exc))

    if not returns:
        result = None
    return web.json_response(CallResult(result=result).model_dump())


async def _handle_resources(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    return web.json_response(CallResult(result=service.resources).model_dump())


async def _handle_info(request: web.Request) -> web.Response:
    config = request.app[SERVICE_KEY].config
    info = ServiceInfo(service=config.service_name, object_path=config.object_path, interface=INTERFACE_NAME)
    return web.json_response(info.model_dump())


async def _handle_signals(request: web.Request) -> web.WebSocketResponse:
    service = request.app[SERVICE_KEY]
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)
    request.app[WEBSOCKETS_KEY].add(ws)
    queue, unsubscribe = service.notifier.subscribe_queue(maxsize=SIGNAL_QUEUE_MAXSIZE)
    _logger.info("Signal subscriber connected (%d total)", service.notifier.subscriber_count)

    async def _pump() -> None:
        while True:
            event = await queue.get()
            message = SignalMessage(
                signal=SIGNAL_RESOURCES_CHANGED,
                serial=event.serial,
                emitted_at=event.emitted_at.isoformat(),
            )
            try:
                await ws.send_json(message.model_dump())
            except ConnectionResetError:
                _logger.debug("Signal subscriber went away before event %d", event.serial)
                return

    pump = asyncio.create_task(_pump())
    try:
        async for _msg in ws:
            # Subscribers have nothing to say; reading only detects the close.
            pass
    finally:
        unsubscribe()
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump
        _logger.info("Signal subscriber disconnected")
    return ws


async def _close_websockets(app: web.Application) -> None:
    for ws in set(app[WEBSOCKETS_KEY]):
        await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")


def create_app(service: ResourceService) -> web.Application:
    """Build the aiohttp application serving *service*."""
    app = web.Application()
    app[SERVICE_KEY] = service
    app[WEBSOCKETS_KEY] = weakref.WeakSet()
    prefix = service.config.object_path.rstrip("/")
    app.router.add_get("/", _handle_info)
    app.router.add_get(f"{prefix}/properties/{PROPERTY_RESOURCES}", _handle_resources)
    app.router.add_get(f"{prefix}/signals", _handle_signals)
    app.router.add_post(prefix + "/{method}", _handle_call)
    app.on_shutdown.append(_close_websockets)
    return app


class ResmandServer:
    """Serve a :class:`ResourceService` on a Unix socket or TCP port.

    Usage::

        server = ResmandServer(service)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(self, service: ResourceService) -> None:
        self._service = service
        self._runner: web.AppRunner | None = None
        self._address: str | None = None

    @property
    def address(self) -> str | None:
        """Where the server listens (socket path or ``host:port``)."""
        return self._address

    async def start(self) -> None:
        config = self._service.config
        runner = web.AppRunner(create_app(self._service), access_log=None)
        await runner.setup()

        site: web.BaseSite
        if config.host:
            site = web.TCPSite(runner, config.host, config.port)
        else:
            socket_path = Path(config.resolved_socket_path)
            socket_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            if socket_path.is_socket():
                _logger.warning("Removing stale socket %s", socket_path)
                socket_path.unlink()
            site = web.UnixSite(runner, str(socket_path))
        await site.start()

        self._runner = runner
        self._address = _bound_address(runner) or site.name
        _logger.info("Serving %s at %s", config.service_name, self._address)

    async def stop(self) -> None:
        runner = self._runner
        self._runner = None
        if runner is None:
            return
        await runner.cleanup()
        config = self._service.config
        if not config.host:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(config.resolved_socket_path)
        _logger.info("Stopped serving %s", config.service_name)


def _bound_address(runner: web.AppRunner) -> str | None:
    for address in runner.addresses:
        if isinstance(address, tuple):
            return f"{address[0]}:{address[1]}"
        if isinstance(address, str):
            return address
    return None
