import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from copy_text import normalize, truncate
from plugin_data import HISTORY_KEY, DocumentDataStore


logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 40

LAYER_NAME_MAX = 60
USER_REQUEST_MAX = 140
GENERATED_TEXT_MAX = 160

FIELD_SEPARATOR = " • "
PATH_SEPARATOR = " > "


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class HistoryEntry:
    """One accepted generation, recorded after the proxy answered.

    Entries are never edited; the log only grows at the front and drops from
    the back.
    """

    layer_name: str
    user_request: str
    generated_text: str
    component_path: Tuple[str, ...] = ()
    timestamp: str = field(default_factory=_utc_now_iso)

    def to_record(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "layerName": self.layer_name,
            "componentPath": list(self.component_path),
            "userRequest": self.user_request,
            "generatedText": self.generated_text,
        }

    @classmethod
    def from_record(cls, record: Any) -> Optional["HistoryEntry"]:
        """Build an entry from a stored record; None when it isn't record-shaped."""
        if not isinstance(record, dict):
            return None
        path = record.get("componentPath")
        if not isinstance(path, list):
            path = []

        def _text(key: str) -> str:
            value = record.get(key)
            return value if isinstance(value, str) else ""

        entry = cls(
            timestamp=_text("timestamp"),
            layer_name=_text("layerName"),
            component_path=tuple(p for p in path if isinstance(p, str)),
            user_request=_text("userRequest"),
            generated_text=_text("generatedText"),
        )
        # Nothing usable to render
        if not format_entry_line(entry):
            return None
        return entry


def parse_history(raw: str) -> List[HistoryEntry]:
    """Decode the stored JSON array. Anything malformed reads as empty history."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("⚠️ Stored generation history is not valid JSON; treating as empty")
        return []
    if not isinstance(data, list):
        logger.warning(f"⚠️ Stored generation history is a {type(data).__name__}, expected a list")
        return []
    entries = [HistoryEntry.from_record(item) for item in data]
    return [entry for entry in entries if entry is not None]


class HistoryStore:
    """Per-document generation log, newest first, capped at MAX_HISTORY_ENTRIES.

    Every call reads storage afresh. There is no lock around append, so two
    overlapping appends resolve as last-write-wins.
    """

    def __init__(self, data_store: DocumentDataStore, file_key: str, max_entries: int = MAX_HISTORY_ENTRIES) -> None:
        self._data_store = data_store
        self._file_key = file_key
        self._max_entries = max_entries

    def load(self) -> List[HistoryEntry]:
        return parse_history(self._data_store.get_plugin_data(self._file_key, HISTORY_KEY))

    def append(self, entry: HistoryEntry) -> List[HistoryEntry]:
        entries = [entry] + self.load()
        # Keep storage bounded
        entries = entries[: self._max_entries]
        payload = json.dumps([e.to_record() for e in entries], ensure_ascii=False)
        self._data_store.set_plugin_data(self._file_key, HISTORY_KEY, payload)
        logger.info(f"🗂️ History for {self._file_key or 'unsaved file'} now holds {len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")
        return entries


def format_entry_line(entry: HistoryEntry) -> str:
    parts: List[str] = []
    timestamp = normalize(entry.timestamp)
    if timestamp:
        parts.append(timestamp)
    layer = normalize(entry.layer_name)
    if layer:
        parts.append(f'Layer: "{truncate(layer, LAYER_NAME_MAX)}"')
    path = [label for label in (normalize(p) for p in entry.component_path) if label]
    if path:
        parts.append(f"Path: {PATH_SEPARATOR.join(path)}")
    request = normalize(entry.user_request)
    if request:
        parts.append(f"Prompt: {truncate(request, USER_REQUEST_MAX)}")
    output = normalize(entry.generated_text)
    if output:
        parts.append(f"Output: {truncate(output, GENERATED_TEXT_MAX)}")
    return FIELD_SEPARATOR.join(parts)


def format_history_for_prompt(entries: Sequence[HistoryEntry]) -> str:
    """One line per entry in stored (newest-first) order; '' for no entries."""
    lines = (format_entry_line(entry) for entry in entries)
    return "\n".join(line for line in lines if line)
