"""
state.py — In-memory state bound to a storage key.

A PersistedState loads its value once when it is created and writes every
change straight through to storage.  It never re-reads on its own; use
SyncedState when another context sharing the same storage area may change
the key underneath it.
"""

import copy
import json
import logging
from typing import Any, Callable, Iterable, List, Optional

from storage import SafeStorage, get_stored_json, set_stored_json, storage_changed

logger = logging.getLogger(__name__)


class PersistedState:
    def __init__(self, storage: SafeStorage, key: str, default: Any = None):
        self.storage = storage
        self.key = key
        self.default = default
        self._value = get_stored_json(storage, key, copy.deepcopy(default))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.key!r}, {self._value!r})"

    @property
    def value(self) -> Any:
        return self._value

    def set(self, value: Any) -> bool:
        """
        Replace the value, or pass a callable to derive it from the previous
        one.  The cache is updated even when persisting fails; the return
        value says whether storage accepted the write.
        """
        new_value = value(self._value) if callable(value) else value
        self._value = new_value
        persisted = set_stored_json(self.storage, self.key, new_value)
        if not persisted:
            logger.warning('Value for "%s" kept in memory only', self.key)
        return persisted

    def reset(self) -> bool:
        """Back to the original default (not the last stored value); drop the key."""
        self._value = copy.deepcopy(self.default)
        return self.storage.remove_item(self.key)


class SyncedState(PersistedState):
    """
    PersistedState that follows writes made through other SafeStorage
    instances on the same storage area.

    Subscribe with mount() / unmount(), or use it as a context manager.
    """

    def __init__(self, storage: SafeStorage, key: str, default: Any = None):
        super().__init__(storage, key, default)
        self._receiver: Optional[Callable] = None

    @property
    def mounted(self) -> bool:
        return self._receiver is not None

    def mount(self) -> "SyncedState":
        if self._receiver is None and self.storage.area is not None:
            self._receiver = self._on_storage_changed
            storage_changed.connect(self._receiver, sender=self.storage.area, weak=False)
        return self

    def unmount(self) -> None:
        if self._receiver is not None:
            storage_changed.disconnect(self._receiver, sender=self.storage.area)
            self._receiver = None

    def __enter__(self) -> "SyncedState":
        return self.mount()

    def __exit__(self, *exc) -> None:
        self.unmount()

    def _on_storage_changed(self, sender, key=None, new_value=None, source=None, **kwargs):
        # Writers never hear about their own changes.
        if source is self.storage or key != self.key or new_value is None:
            return
        try:
            self._value = json.loads(new_value)
        except ValueError as e:
            logger.error('Error parsing storage event for key "%s": %s', self.key, e)


class BooleanState(PersistedState):
    def __init__(self, storage: SafeStorage, key: str, default: bool = False):
        super().__init__(storage, key, default)

    def toggle(self) -> bool:
        return self.set(lambda prev: not prev)

    def set_true(self) -> bool:
        return self.set(True)

    def set_false(self) -> bool:
        return self.set(False)

    def set_boolean(self, value: bool) -> bool:
        return self.set(bool(value))


class ListState(PersistedState):
    """A persisted list.  Every helper goes through set() with an updater."""

    def __init__(self, storage: SafeStorage, key: str, default: Optional[List] = None):
        super().__init__(storage, key, [] if default is None else default)

    def add(self, item: Any) -> bool:
        return self.set(lambda prev: list(prev) + [item])

    def remove(self, index: int) -> bool:
        return self.set(lambda prev: [x for i, x in enumerate(prev) if i != index])

    def update(self, index: int, item: Any) -> bool:
        return self.set(lambda prev: [item if i == index else x for i, x in enumerate(prev)])

    def clear(self) -> bool:
        return self.set([])

    def replace(self, items: Iterable) -> bool:
        return self.set(list(items))


def storage_available(storage: SafeStorage) -> bool:
    return storage.is_available()
