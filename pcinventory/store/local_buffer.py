"""
Local Buffer Store: parts entered while no identity is active.

A single JSON list per namespace key, kept on disk so it survives restarts.
Absent or corrupt data reads as an empty list.
"""
import json
import os
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from pcinventory.logger import get_logger

logger = get_logger(__name__)

LOCAL_KEY = "pcinventory:parts:local"


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "value") and not isinstance(value, (str, int, float, bool)):
        return value.value  # Enum
    return value


class LocalBufferStore:
    """
    Key-value persistence of a list of Part-shaped records.

    :param directory: folder holding the buffer file
    :param key: namespace key, one file per key
    """

    def __init__(self, directory: str, key: str = LOCAL_KEY):
        self.directory = directory
        self.key = key
        os.makedirs(directory, exist_ok=True)

    @property
    def path(self) -> str:
        filename = self.key.replace(":", "_") + ".json"
        return os.path.join(self.directory, filename)

    def load(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Local buffer %s unreadable, treating as empty: %s", self.path, e)
            return []
        if not isinstance(data, list):
            logger.warning("Local buffer %s is not a list, treating as empty", self.path)
            return []
        return [r for r in data if isinstance(r, dict)]

    def save(self, records: List[Dict[str, Any]]) -> None:
        payload = [
            {k: _json_safe(v) for k, v in record.items()}
            for record in (records or [])
        ]
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    def prepend(self, record: Dict[str, Any]) -> None:
        records = self.load()
        records.insert(0, record)
        self.save(records)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
