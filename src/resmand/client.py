"""High-level async client for a running resmand daemon."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

import aiohttp
from pydantic import ValidationError

from resmand._constants import PROPERTY_RESOURCES, SIGNAL_RESOURCES_CHANGED
from resmand.config import ResmandConfig
from resmand.exceptions import (
    EncodingError,
    FileReadError,
    PreprocessExecError,
    ResmandError,
    ResmandRemoteError,
    ResmandTransportError,
    ResourceLoadError,
)
from resmand.models import CallRequest, CallResult, ErrorReply, SignalMessage
from resmand.state.events import ChangeEvent

_logger = logging.getLogger(__name__)

_LOAD_ERRORS: dict[str, type[ResourceLoadError]] = {
    cls.__name__: cls for cls in (FileReadError, PreprocessExecError, EncodingError, ResourceLoadError)
}


def _raise_for_error(method: str, status: int, body: Any) -> None:
    try:
        reply = ErrorReply.model_validate(body)
    except ValidationError as exc:
        raise ResmandTransportError(
            f"HTTP {status} from {method} without an error body",
            status_code=status,
            method=method,
        ) from exc
    error = reply.error
    load_error = _LOAD_ERRORS.get(error.type)
    if load_error is not None:
        raise load_error(error.message, path=error.path or "")
    raise ResmandRemoteError(
        f"{error.type}: {error.message}",
        error_type=error.type,
        status_code=status,
        method=method,
    )


class ResmandClient:
    """Async client for the resmand bus.

    Usage::

        async with ResmandClient(ResmandConfig.from_env()) as client:
            await client.merge("/home/user/.config/regolith3/Xresources")
            print(await client.query("gnome"))

    Parameters
    ----------
    config : ResmandConfig
        Where to find the daemon (socket path or host/port, object path).
    session : aiohttp.ClientSession, optional
        Use an existing session instead of opening one. The caller keeps
        ownership and must close it.
    base_url : str, optional
        Override the URL the object path is appended to. Needed together
        with *session* when that session targets a test server.
    """

    def __init__(
        self,
        config: ResmandConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        base_url: str | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        if base_url is None:
            base_url = f"http://{config.host}:{config.port}" if config.host else "http://localhost"
        self._base_url = base_url.rstrip("/")
        self._prefix = config.object_path.rstrip("/")

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ResmandClient:
        if self._http_session is None:
            connector: aiohttp.BaseConnector | None = None
            if not self._config.host:
                connector = aiohttp.UnixConnector(path=self._config.resolved_socket_path)
            self._http_session = aiohttp.ClientSession(connector=connector)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise ResmandError("Client not initialized. Use 'async with ResmandClient(...) as client:'")
        return self._http_session

    def _url(self, suffix: str) -> str:
        return f"{self._base_url}{self._prefix}/{suffix}"

    async def _read_json(self, resp: aiohttp.ClientResponse, method: str) -> Any:
        try:
            return await resp.json(content_type=None)
        except ValueError as exc:
            raise ResmandTransportError(
                f"Invalid JSON from {method} (HTTP {resp.status})",
                status_code=resp.status,
                method=method,
            ) from exc

    async def _call(self, method: str, *args: Any) -> Any:
        session = self._require_session()
        body = CallRequest(args=list(args)).model_dump()
        _logger.debug("Calling %s%s", method, args)
        try:
            async with session.post(self._url(method), json=body) as resp:
                payload = await self._read_json(resp, method)
                status = resp.status
        except aiohttp.ClientError as exc:
            raise ResmandTransportError(f"Call to {method} failed: {exc}", method=method) from exc

        if status != 200:
            _raise_for_error(method, status, payload)
        try:
            return CallResult.model_validate(payload).result
        except ValidationError as exc:
            raise ResmandTransportError(
                f"Unexpected reply from {method}: {payload!r}",
                status_code=status,
                method=method,
            ) from exc

    # ------------------------------------------------------------------
    # File ingestion
    # ------------------------------------------------------------------

    async def load(self, path: str, disable_preprocessing: bool | None = None) -> None:
        """Load *path* into the daemon without overriding existing resources."""
        if disable_preprocessing is None:
            await self._call("Load", path)
        else:
            await self._call("Load", path, disable_preprocessing)

    async def merge(self, path: str, disable_preprocessing: bool | None = None) -> None:
        """Merge *path* into the daemon, overriding existing resources."""
        if disable_preprocessing is None:
            await self._call("Merge", path)
        else:
            await self._call("Merge", path, disable_preprocessing)

    async def load_with_preprocessor(self, path: str, preprocessor: str, args: str = "") -> None:
        await self._call("LoadWithPreprocessor", path, preprocessor, args)

    async def merge_with_preprocessor(self, path: str, preprocessor: str, args: str = "") -> None:
        await self._call("MergeWithPreprocessor", path, preprocessor, args)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def query(self, substring: str = "") -> str:
        return str(await self._call("Query", substring))

    async def get_resource(self, key: str) -> str:
        return str(await self._call("GetResource", key))

    async def set_resource(self, key: str, value: str) -> None:
        await self._call("SetResource", key, value)

    async def add_resource(self, key: str, value: str) -> None:
        await self._call("AddResource", key, value)

    async def remove_one(self, key: str) -> tuple[str, str] | None:
        """Remove *key*; returns the removed pair or ``None`` if it was absent."""
        result = await self._call("RemoveOne", key)
        if result is None:
            return None
        removed_key, removed_value = result
        return str(removed_key), str(removed_value)

    async def remove_all(self) -> None:
        await self._call("RemoveAll")

    async def resources(self) -> dict[str, str]:
        """Fetch the full table (the ``Resources`` property)."""
        session = self._require_session()
        try:
            async with session.get(self._url(f"properties/{PROPERTY_RESOURCES}")) as resp:
                payload = await self._read_json(resp, PROPERTY_RESOURCES)
                status = resp.status
        except aiohttp.ClientError as exc:
            raise ResmandTransportError(
                f"Reading {PROPERTY_RESOURCES} failed: {exc}",
                method=PROPERTY_RESOURCES,
            ) from exc
        if status != 200:
            _raise_for_error(PROPERTY_RESOURCES, status, payload)
        try:
            result = CallResult.model_validate(payload).result
            return {str(k): str(v) for k, v in (result or {}).items()}
        except (ValidationError, AttributeError) as exc:
            raise ResmandTransportError(
                f"Unexpected {PROPERTY_RESOURCES} reply: {payload!r}",
                status_code=status,
                method=PROPERTY_RESOURCES,
            ) from exc

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    async def subscribe(self) -> AsyncIterator[ChangeEvent]:
        """Yield a :class:`ChangeEvent` for every ``ResourcesChanged`` signal.

        The iterator ends when the daemon closes the stream.
        """
        session = self._require_session()
        try:
            ws = await session.ws_connect(self._url("signals"))
        except aiohttp.ClientError as exc:
            raise ResmandTransportError(f"Signal subscription failed: {exc}", method="signals") from exc
        async with ws:
            async for msg in ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    continue
                try:
                    signal = SignalMessage.model_validate_json(msg.data)
                except ValidationError:
                    _logger.warning("Ignoring malformed signal message: %s", msg.data[:200])
                    continue
                if signal.signal != SIGNAL_RESOURCES_CHANGED:
                    continue
                emitted_at = datetime.fromisoformat(signal.emitted_at) if signal.emitted_at else datetime.now(UTC)
                yield ChangeEvent(serial=signal.serial, emitted_at=emitted_at)
