from __future__ import annotations

from typing import Any, Dict, List, Sequence

from repository.base_reader import BaseReader, cell

CACHE_KEY = "system_config"

_DISABLED = {"false", "0", "no", "n", "off"}


def _order(value: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 9999


def config_label(system_config: Dict[str, List[Dict[str, Any]]], category: str, value: str, default: str = "N/A") -> str:
    """Display label (note) of a configured value; the raw value, or ``default`` when blank."""
    for item in system_config.get(category, []):
        if item["value"] == value:
            return item["note"] or value or default
    return value or default


def parse_config_row(row: Sequence[str], row_index: int) -> Dict[str, Any]:
    return {
        "rowIndex": row_index,
        "category": cell(row, 0).strip(),
        "value": cell(row, 1).strip(),
        "note": cell(row, 2),
        "order": _order(cell(row, 3)),
        "enabled": cell(row, 4).strip().lower() not in _DISABLED,
        "color": cell(row, 5),
        "value2": cell(row, 6),
        "value3": cell(row, 7),
    }


class SystemReader(BaseReader):
    async def get_system_config(self) -> Dict[str, List[Dict[str, Any]]]:
        rows = await self._fetch_and_cache(
            CACHE_KEY,
            self.config.sheet_range("system_config"),
            parse_config_row,
            lambda item: item["order"],
        )
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for item in rows:
            if not item["category"] or not item["value"] or not item["enabled"]:
                continue
            grouped.setdefault(item["category"], []).append(item)
        return grouped

