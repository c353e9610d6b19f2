"""
Plugin Data - per-document key/value persistence.

Mirrors Figma's ``root.getPluginData`` / ``setPluginData``: every design file
(identified by its file key) owns a flat map of string keys to string values.
Each document is one JSON file under ``base_dir``. Reads go to disk every
time; there is no process-wide cache.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)

CONTEXT_KEY = "copy-assistant-context"
HISTORY_KEY = "copy-assistant-history"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class DocumentDataStore:
    def __init__(self, base_dir: str | os.PathLike = ".copy-assistant"):
        self.base_dir = Path(base_dir)

    def _path_for(self, file_key: str) -> Path:
        safe_key = _UNSAFE_CHARS.sub("_", file_key or "") or "_unsaved"
        return self.base_dir / f"{safe_key}.json"

    def _read_document(self, file_key: str) -> Dict[str, str]:
        path = self._path_for(file_key)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"⚠️ Ignoring unreadable plugin data at {path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def get_plugin_data(self, file_key: str, key: str) -> str:
        """Return the stored value, or an empty string like Figma does."""
        return self._read_document(file_key).get(key, "")

    def set_plugin_data(self, file_key: str, key: str, value: str) -> None:
        document = self._read_document(file_key)
        document[key] = value
        self.base_dir.mkdir(parents=True, exist_ok=True)
        path = self._path_for(file_key)
        fd, tmp_path = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, ensure_ascii=False)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"💾 Stored {key} for document {file_key} ({len(value)} chars)")


def get_project_context(store: DocumentDataStore, file_key: str) -> str:
    return store.get_plugin_data(file_key, CONTEXT_KEY)


def set_project_context(store: DocumentDataStore, file_key: str, context: str) -> None:
    store.set_plugin_data(file_key, CONTEXT_KEY, context)
