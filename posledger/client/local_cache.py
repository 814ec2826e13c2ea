import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Callable, List, Optional

from posledger.core.config import LOCAL_CACHE_DIR, LOCAL_CACHE_NAMESPACE

log = logging.getLogger("local_cache")

# listener(key, value, origin); value is None after a removal
CacheListener = Callable[[str, Any, Optional[object]], None]

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class LocalCache:
    """
    Namespaced key/value cache on local disk, one JSON file per key.

    Layout per account: one key per collection, one "migrated" flag, one outbox.
    Writers pass an `origin` so listeners can ignore their own changes.
    """

    def __init__(self, root: Optional[str] = None, namespace: str = LOCAL_CACHE_NAMESPACE):
        self.root = Path(root or LOCAL_CACHE_DIR)
        self.root.mkdir(parents=True, exist_ok=True)
        self.namespace = namespace
        self._listeners: List[CacheListener] = []

    def key(self, account_id: Optional[str], name: str) -> str:
        if account_id is None:
            return f"{self.namespace}_{name}"
        return f"{self.namespace}_{account_id}_{name}"

    def _path(self, key: str) -> Path:
        return self.root / f"{_UNSAFE.sub('_', key)}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            log.error(f"Unreadable cache entry {key}: {e}")
            return default

    def set(self, key: str, value: Any, origin: Optional[object] = None) -> None:
        path = self._path(key)
        # Write to a sibling temp file first so readers never see half a file
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(value, fh)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        self._notify(key, value, origin)

    def remove(self, key: str, origin: Optional[object] = None) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()
            self._notify(key, None, origin)

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """Registers a change listener; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, value: Any, origin: Optional[object]) -> None:
        for listener in list(self._listeners):
            listener(key, value, origin)
