"""
storage.py — Per-browser key/value persistence for the dashboard.

Layers, lowest first:

  LocalStore       the storage area itself (string → string), in memory or
                   one JSON file per browser.  Raises on failure.
  SafeStorage      never raises.  Failures become None / False plus a log
                   line.  Broadcasts `storage_changed` after each mutation.
  JSON codec       get_stored_json / set_stored_json, with a fallback value.
  ContractStorage  named accessors for the dashboard's keys.
"""

import contextlib
import json
import logging
import os
import threading
import weakref
from typing import Any, Dict, List, Optional

from blinker import Namespace

from models import AnalysisType, ApiConfig, ContractData

logger = logging.getLogger(__name__)

# Same order of magnitude as a browser's localStorage budget.
DEFAULT_QUOTA = 5 * 1024 * 1024

_signals = Namespace()

# Sent with the storage area name as sender and
# key / old_value / new_value / source keyword arguments.
storage_changed = _signals.signal("storage-changed")


class StorageKeys:
    # Contract dashboard
    CONTRACT_DATA       = "contract-data"
    CONTRACT_ACTIVE_TAB = "contract-active-tab"
    API_CONFIG          = "api-config"
    ANALYSIS_TYPE       = "analysis-type"
    CUSTOM_QUERY        = "custom-query"

    # User preferences
    THEME    = "app-theme"
    LANGUAGE = "app-language"

    # UI state
    SIDEBAR_COLLAPSED = "sidebar-collapsed"
    UPLOAD_MINIMIZED  = "upload-minimized"

    # Recent activity
    RECENT_UPLOADS  = "recent-uploads"
    RECENT_ANALYSES = "recent-analyses"


CONTRACT_KEYS = (
    StorageKeys.CONTRACT_DATA,
    StorageKeys.CONTRACT_ACTIVE_TAB,
    StorageKeys.API_CONFIG,
    StorageKeys.ANALYSIS_TYPE,
    StorageKeys.CUSTOM_QUERY,
)


# ─────────────────────────────────────────────────────────────────────────────
# Storage area
# ─────────────────────────────────────────────────────────────────────────────

class QuotaExceededError(Exception):
    """A write would push the storage area past its quota."""


class _AreaLock:
    """Re-entrant lock shared by every LocalStore open on one area."""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self):
        self._lock = threading.RLock()

    def __enter__(self):
        return self._lock.__enter__()

    def __exit__(self, *exc):
        return self._lock.__exit__(*exc)


# Dropped once no store on the area is alive.
_area_locks: "weakref.WeakValueDictionary[str, _AreaLock]" = weakref.WeakValueDictionary()
_area_locks_guard = threading.Lock()


def _area_lock(area: str) -> _AreaLock:
    with _area_locks_guard:
        lock = _area_locks.get(area)
        if lock is None:
            lock = _AreaLock()
            _area_locks[area] = lock
        return lock


class LocalStore:
    """
    A string → string storage area with web-storage semantics.

    With a `path` the data lives in a JSON file that is re-read on every
    operation, so several stores opened on the same file observe each
    other's writes.  Without one it lives in a private dict.
    """

    def __init__(self, path: Optional[str] = None, quota: int = DEFAULT_QUOTA):
        self.path = os.path.abspath(path) if path else None
        self.quota = quota
        self._memory: Optional[Dict[str, str]] = None if self.path else {}
        self.area = f"file:{self.path}" if self.path else f"memory:{id(self):x}"
        self._lock = _area_lock(self.area)

    def __repr__(self) -> str:
        return f"LocalStore({self.area!r})"

    def _load(self) -> Dict[str, str]:
        if self._memory is not None:
            return dict(self._memory)
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.path} does not hold a JSON object")
        return data

    def _save(self, data: Dict[str, str]) -> None:
        if self._memory is not None:
            self._memory = data
            return
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        tmp = f"{self.path}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except Exception:
            # The previous file stays intact; only the partial write goes.
            with contextlib.suppress(OSError):
                os.remove(tmp)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = str(value)
            used = sum(len(k) + len(v) for k, v in data.items())
            if used > self.quota:
                raise QuotaExceededError(
                    f"Setting '{key}' needs {used} characters, quota is {self.quota}"
                )
            self._save(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)

    def clear(self) -> None:
        with self._lock:
            self._save({})

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._load())

    def __len__(self) -> int:
        return len(self.keys())


# ─────────────────────────────────────────────────────────────────────────────
# Safe wrapper
# ─────────────────────────────────────────────────────────────────────────────

class SafeStorage:
    """
    Error-proof access to a storage area.

    `store` may be None, meaning no storage area exists in this context
    (e.g. outside a browser request).  Reads then return None and writes
    return False, without logging.
    """

    PROBE_KEY = "__localStorage_test__"

    def __init__(self, store: Optional[LocalStore]):
        self.store = store

    @property
    def area(self) -> Optional[str]:
        return self.store.area if self.store is not None else None

    def get_item(self, key: str) -> Optional[str]:
        if self.store is None:
            return None
        try:
            return self.store.get_item(key)
        except Exception as e:
            logger.warning('get_item failed for key "%s": %s', key, e)
            return None

    def set_item(self, key: str, value: Any) -> bool:
        if self.store is None:
            return False
        try:
            old_value = self.store.get_item(key)
            self.store.set_item(key, value)
        except Exception as e:
            logger.warning('set_item failed for key "%s": %s', key, e)
            return False
        self._notify(key, old_value, str(value))
        return True

    def remove_item(self, key: str) -> bool:
        if self.store is None:
            return False
        try:
            old_value = self.store.get_item(key)
            self.store.remove_item(key)
        except Exception as e:
            logger.warning('remove_item failed for key "%s": %s', key, e)
            return False
        if old_value is not None:
            self._notify(key, old_value, None)
        return True

    def clear(self) -> bool:
        if self.store is None:
            return False
        try:
            self.store.clear()
        except Exception as e:
            logger.warning("clear failed: %s", e)
            return False
        self._notify(None, None, None)
        return True

    def is_available(self) -> bool:
        """Write then delete a throwaway key; True only if both succeed."""
        if self.store is None:
            return False
        try:
            self.store.set_item(self.PROBE_KEY, "test")
            self.store.remove_item(self.PROBE_KEY)
            return True
        except Exception:
            return False

    def _notify(self, key, old_value, new_value) -> None:
        try:
            storage_changed.send(
                self.store.area,
                key=key, old_value=old_value, new_value=new_value, source=self,
            )
        except Exception:
            logger.exception("storage_changed receiver failed for key %r", key)


# ─────────────────────────────────────────────────────────────────────────────
# JSON codec
# ─────────────────────────────────────────────────────────────────────────────

def get_stored_json(storage: SafeStorage, key: str, fallback: Any) -> Any:
    """Decode the JSON stored under `key`, or return `fallback`."""
    stored = storage.get_item(key)
    if not stored:
        return fallback
    try:
        return json.loads(stored)
    except ValueError as e:
        logger.warning('Failed to parse JSON for key "%s": %s', key, e)
        return fallback


def set_stored_json(storage: SafeStorage, key: str, value: Any) -> bool:
    try:
        encoded = json.dumps(value, allow_nan=False)
    except (TypeError, ValueError) as e:
        logger.warning('Failed to serialise JSON for key "%s": %s', key, e)
        return False
    return storage.set_item(key, encoded)


# ─────────────────────────────────────────────────────────────────────────────
# Domain facade
# ─────────────────────────────────────────────────────────────────────────────

class ContractStorage:
    """
    Typed access to the contract dashboard's keys.

    The active tab and the custom query are stored as raw strings; every
    other key holds JSON.  Keep it that way when adding accessors, or
    values written by one side will not decode on the other.
    """

    DEFAULT_TAB = "analysis"

    def __init__(self, storage: SafeStorage):
        self.storage = storage

    def get_contract_data(self) -> Optional[ContractData]:
        return ContractData.from_dict(
            get_stored_json(self.storage, StorageKeys.CONTRACT_DATA, None)
        )

    def set_contract_data(self, data: ContractData) -> bool:
        return set_stored_json(self.storage, StorageKeys.CONTRACT_DATA, data.to_dict())

    def clear_contract_data(self) -> bool:
        return self.storage.remove_item(StorageKeys.CONTRACT_DATA)

    def get_active_tab(self) -> str:
        return self.storage.get_item(StorageKeys.CONTRACT_ACTIVE_TAB) or self.DEFAULT_TAB

    def set_active_tab(self, tab: str) -> bool:
        return self.storage.set_item(StorageKeys.CONTRACT_ACTIVE_TAB, tab)

    def get_api_config(self) -> Optional[ApiConfig]:
        return ApiConfig.from_dict(
            get_stored_json(self.storage, StorageKeys.API_CONFIG, None)
        )

    def set_api_config(self, config: ApiConfig) -> bool:
        return set_stored_json(self.storage, StorageKeys.API_CONFIG, config.to_dict())

    def clear_api_config(self) -> bool:
        return self.storage.remove_item(StorageKeys.API_CONFIG)

    def get_analysis_type(self) -> AnalysisType:
        return AnalysisType.from_dict(
            get_stored_json(self.storage, StorageKeys.ANALYSIS_TYPE, {"type": AnalysisType().type})
        )

    def set_analysis_type(self, analysis_type: AnalysisType) -> bool:
        return set_stored_json(self.storage, StorageKeys.ANALYSIS_TYPE, analysis_type.to_dict())

    def get_custom_query(self) -> str:
        return self.storage.get_item(StorageKeys.CUSTOM_QUERY) or ""

    def set_custom_query(self, query: str) -> bool:
        return self.storage.set_item(StorageKeys.CUSTOM_QUERY, query)

    def clear_all(self) -> bool:
        """Remove the five contract keys.  Preference and UI keys are kept."""
        results = [self.storage.remove_item(key) for key in CONTRACT_KEYS]
        return all(results)


class StorageManager:
    """JSON access to a single key with a fixed default."""

    def __init__(self, storage: SafeStorage, key: str, default: Any = None):
        self.storage = storage
        self.key = key
        self.default = default

    def get(self) -> Any:
        return get_stored_json(self.storage, self.key, self.default)

    def set(self, value: Any) -> bool:
        return set_stored_json(self.storage, self.key, value)

    def remove(self) -> bool:
        return self.storage.remove_item(self.key)

    def exists(self) -> bool:
        return self.storage.get_item(self.key) is not None
