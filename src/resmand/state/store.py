"""In-memory resource table.

This is the only component allowed to mutate resources. Mutations run their
read-decide-write sequence under one lock and swap in a new immutable
snapshot; readers grab the current snapshot without locking and therefore
never observe a half-applied mutation.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from types import MappingProxyType

from resmand._constants import QUERY_SEPARATOR

_logger = logging.getLogger(__name__)


def format_entry(key: str, value: str) -> str:
    """Format one entry the way ``query`` reports it."""
    return f"{key}{QUERY_SEPARATOR}{value}"


class ResourceStore:
    """Authoritative key/value table of the daemon.

    Keys set through :meth:`set_resource` and :meth:`add_resource` are not
    validated; only keys arriving through file parsing are (see
    :func:`resmand.parser.parse_config`). Programmatic callers are trusted
    to pick sensible keys.

    Parameters
    ----------
    on_change : callable, optional
        Called once, after the lock is released, for every call that
        changed the table. Exceptions from it are logged and never undo
        the mutation.
    """

    def __init__(self, *, on_change: Callable[[], object] | None = None) -> None:
        self._on_change = on_change
        self._lock = threading.Lock()
        self._resources: Mapping[str, str] = MappingProxyType({})

    @property
    def on_change(self) -> Callable[[], object] | None:
        return self._on_change

    @on_change.setter
    def on_change(self, callback: Callable[[], object] | None) -> None:
        self._on_change = callback

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _publish(self, changed: bool) -> None:
        if not changed or self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            _logger.exception("Change notification failed")

    def _swap(self, resources: dict[str, str]) -> None:
        self._resources = MappingProxyType(resources)

    def _apply(self, entries: Mapping[str, str], *, overwrite: bool) -> int:
        with self._lock:
            current = self._resources
            updated = dict(current)
            changed = 0
            for key, value in entries.items():
                existing = current.get(key)
                if existing == value:
                    continue
                if existing is not None and not overwrite:
                    continue
                updated[key] = value
                changed += 1
            if changed:
                self._swap(updated)
        return changed

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def load_entries(self, entries: Mapping[str, str]) -> int:
        """Insert parsed entries whose key is not present yet.

        Existing values always win, so loading a defaults file after an
        overrides file keeps the overrides.

        Returns the number of entries inserted.
        """
        inserted = self._apply(entries, overwrite=False)
        _logger.info("Loaded %d of %d entries", inserted, len(entries))
        _logger.debug("Resources after loading: %s", dict(self._resources))
        self._publish(inserted > 0)
        return inserted

    def merge_entries(self, entries: Mapping[str, str]) -> int:
        """Insert parsed entries, overwriting existing values.

        Returns the number of entries inserted or changed.
        """
        changed = self._apply(entries, overwrite=True)
        _logger.info("Merged %d of %d entries", changed, len(entries))
        _logger.debug("Resources after merging: %s", dict(self._resources))
        self._publish(changed > 0)
        return changed

    def set_resource(self, key: str, value: str) -> bool:
        """Set *key* to *value*, overwriting an existing value.

        Returns ``False`` (and notifies nobody) when the value is already
        current.
        """
        key = key.strip()
        value = value.strip()
        with self._lock:
            current = self._resources
            changed = current.get(key) != value
            if changed:
                self._swap({**current, key: value})
        if changed:
            _logger.info("Resource %s set to %r", key, value)
        self._publish(changed)
        return changed

    def add_resource(self, key: str, value: str) -> bool:
        """Add *key* only if it is not defined yet. Returns whether it was added."""
        key = key.strip()
        value = value.strip()
        with self._lock:
            current = self._resources
            added = key not in current
            if added:
                self._swap({**current, key: value})
        if added:
            _logger.info("Resource %s added with %r", key, value)
        self._publish(added)
        return added

    def remove_one(self, key: str) -> tuple[str, str] | None:
        """Remove *key* and return the removed ``(key, value)`` pair, if any."""
        key = key.strip()
        with self._lock:
            current = self._resources
            if key not in current:
                removed = None
            else:
                updated = dict(current)
                removed = (key, updated.pop(key))
                self._swap(updated)
        if removed is not None:
            _logger.warning("Resource cleared %s", removed)
        self._publish(removed is not None)
        return removed

    def remove_all(self) -> int:
        """Clear the table and return how many entries were removed."""
        with self._lock:
            count = len(self._resources)
            if count:
                self._swap({})
        _logger.warning("All resources cleared (%d removed)", count)
        self._publish(count > 0)
        return count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(self, substring: str) -> str:
        """Return matching entries as sorted ``"key :\\tvalue"`` lines.

        An entry matches when its key contains the trimmed *substring*
        anywhere; the empty string matches everything.
        """
        needle = substring.strip()
        lines = sorted(format_entry(k, v) for k, v in self._resources.items() if needle in k)
        result = "\n".join(lines)
        _logger.info("%d resources match the query %r", len(lines), needle)
        return result

    def get_resource(self, key: str) -> str:
        """Return the value of *key*, or ``""`` when it is not defined."""
        key = key.strip()
        value = self._resources.get(key, "")
        _logger.info("Value of key %s is %r", key, value)
        return value

    def snapshot(self) -> dict[str, str]:
        """Return a copy of the whole table."""
        return dict(self._resources)

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, key: object) -> bool:
        return key in self._resources
