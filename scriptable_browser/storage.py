"""Key-value store shared between the script loader and the browser.

The loader and the browser are separate programs, so the downloaded
script travels through a small JSON file. The store starts empty, the
loader writes the script under :data:`USER_SCRIPT_KEY`, and the browser
reads it once at startup. The store is passed around explicitly as a
:class:`KeyValueStore` handle.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

USER_SCRIPT_KEY = "userScript"


class KeyValueStore:
    """A JSON file holding string keys and JSON-serializable values."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as ex:
            logger.warning("ignoring unreadable store %s: %s", self.path, ex)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it was present."""
        data = self._read()
        if key not in data:
            return False
        del data[key]
        self._write(data)
        return True

    def __contains__(self, key: str) -> bool:
        return key in self._read()
