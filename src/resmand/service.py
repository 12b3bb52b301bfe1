"""Operation surface of the daemon.

:class:`ResourceService` maps every bus operation onto the store. File
reading and preprocessing happen here, outside the store's lock, so two
slow loads of different files overlap and only the final table update is
serialized.
"""

from __future__ import annotations

import logging

from resmand.config import ResmandConfig
from resmand.exceptions import ResourceLoadError
from resmand.notifier import ChangeNotifier
from resmand.parser import parse_config
from resmand.preprocess import PreprocessOptions, read_config_text
from resmand.state.store import ResourceStore

_logger = logging.getLogger(__name__)


class ResourceService:
    """Resource manager exposed on the bus.

    Usage::

        service = ResourceService(ResmandConfig())
        await service.bootstrap()
        await service.merge("/home/user/.Xresources")
        service.query("color")
    """

    def __init__(
        self,
        config: ResmandConfig,
        *,
        notifier: ChangeNotifier | None = None,
        store: ResourceStore | None = None,
    ) -> None:
        self._config = config
        self._notifier = notifier if notifier is not None else ChangeNotifier()
        if store is None:
            store = ResourceStore()
        # The service owns change delivery; an injected store reports to our notifier.
        store.on_change = self._notifier.notify
        self._store = store

    @property
    def config(self) -> ResmandConfig:
        return self._config

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    @property
    def store(self) -> ResourceStore:
        return self._store

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def bootstrap(self) -> int:
        """Load the configured bootstrap file, if any.

        A failure is logged and leaves the table empty; the daemon keeps
        serving. Returns the number of entries loaded.
        """
        _logger.info("Initializing resource daemon %s", self._config.service_name)
        path = self._config.bootstrap_file
        if not path:
            return 0
        try:
            return await self.load(path)
        except ResourceLoadError:
            return 0

    # ------------------------------------------------------------------
    # File ingestion
    # ------------------------------------------------------------------

    async def _ingest(self, path: str, options: PreprocessOptions, *, overwrite: bool) -> int:
        verb = "merge" if overwrite else "load"
        try:
            text = await read_config_text(
                path,
                options,
                default_preprocessor=self._config.preprocessor,
            )
        except ResourceLoadError as exc:
            _logger.error("Failed to %s %s: %s", verb, path, exc)
            raise
        entries = parse_config(text)
        _logger.info("Parsed %d resources from %s", len(entries), path)
        if overwrite:
            return self._store.merge_entries(entries)
        return self._store.load_entries(entries)

    def _options(self, disable_preprocessing: bool | None) -> PreprocessOptions:
        if disable_preprocessing is None:
            disable_preprocessing = self._config.disable_preprocessing
        return PreprocessOptions(disable=disable_preprocessing)

    async def load(self, path: str, disable_preprocessing: bool | None = None) -> int:
        """Load resources from *path* without overriding existing ones."""
        return await self._ingest(path, self._options(disable_preprocessing), overwrite=False)

    async def merge(self, path: str, disable_preprocessing: bool | None = None) -> int:
        """Merge resources from *path*, overriding existing ones."""
        return await self._ingest(path, self._options(disable_preprocessing), overwrite=True)

    async def load_with_preprocessor(self, path: str, preprocessor: str, args: str = "") -> int:
        """Load resources from *path* using a custom preprocessor command."""
        options = PreprocessOptions(preprocessor=preprocessor, args=args)
        return await self._ingest(path, options, overwrite=False)

    async def merge_with_preprocessor(self, path: str, preprocessor: str, args: str = "") -> int:
        """Merge resources from *path* using a custom preprocessor command."""
        options = PreprocessOptions(preprocessor=preprocessor, args=args)
        return await self._ingest(path, options, overwrite=True)

    # ------------------------------------------------------------------
    # Single-resource operations
    # ------------------------------------------------------------------

    def query(self, substring: str) -> str:
        return self._store.query(substring)

    def get_resource(self, key: str) -> str:
        return self._store.get_resource(key)

    def set_resource(self, key: str, value: str) -> bool:
        return self._store.set_resource(key, value)

    def add_resource(self, key: str, value: str) -> bool:
        return self._store.add_resource(key, value)

    def remove_one(self, key: str) -> tuple[str, str] | None:
        return self._store.remove_one(key)

    def remove_all(self) -> int:
        return self._store.remove_all()

    @property
    def resources(self) -> dict[str, str]:
        """Snapshot of the full table (the read-only ``Resources`` property)."""
        return self._store.snapshot()
