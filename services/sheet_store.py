from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from azure.core.exceptions import ResourceExistsError
from azure.data.tables import UpdateMode
from azure.data.tables.aio import TableServiceClient

from services.errors import StoreError
from shared.config import get_setting, get_storage_connection_string

logger = logging.getLogger(__name__)

WORKBOOK_TABLE = get_setting("CRM_SHEETS_TABLE", "CRMWorkbook") or "CRMWorkbook"

# Row 1 of every sheet is the header row.
FIRST_DATA_ROW = 2
_MAX_APPEND_ATTEMPTS = 5
_RANGE_RE = re.compile(r"^(?P<sheet>[^!]+)!(?P<first>[A-Z]+)\d*:(?P<last>[A-Z]+)\d*$")


class SheetRow(NamedTuple):
    row_index: int
    values: List[str]


class SheetRange(NamedTuple):
    sheet: str
    first_col: int
    last_col: int

    @property
    def width(self) -> int:
        return self.last_col - self.first_col + 1


def column_index(letters: str) -> int:
    """Zero-based index of a column letter: A -> 0, X -> 23, AA -> 26."""
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def column_letter(index: int) -> str:
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def parse_range(range_name: str) -> SheetRange:
    match = _RANGE_RE.match(str(range_name or "").strip())
    if not match:
        raise StoreError(f"Malformed sheet range: {range_name!r}")
    first = column_index(match.group("first"))
    last = column_index(match.group("last"))
    if last < first:
        raise StoreError(f"Malformed sheet range: {range_name!r}")
    return SheetRange(match.group("sheet"), first, last)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _row_key(row_index: int) -> str:
    return f"{row_index:09d}"


def _escape_odata(value: str) -> str:
    return str(value or "").replace("'", "''")


class SheetStore(ABC):
    """
    Positional row-range API shared by the remote and in-memory backends.
    Rows keep their index after a delete; appends always go past the highest index.
    """

    @abstractmethod
    async def get_values(self, range_name: str) -> List[SheetRow]:
        ...

    @abstractmethod
    async def append_row(self, range_name: str, values: Iterable[Any]) -> int:
        ...

    @abstractmethod
    async def update_row(self, range_name: str, row_index: int, values: Iterable[Any]) -> None:
        ...

    @abstractmethod
    async def delete_row(self, sheet: str, row_index: int) -> None:
        ...

    async def close(self) -> None:
        return None


class TableSheetStore(SheetStore):
    """Workbook persisted in one Azure Table: PartitionKey = sheet, RowKey = row index, one property per column."""

    def __init__(
        self,
        connection_string: Optional[str] = None,
        table_name: str = WORKBOOK_TABLE,
        service=None,
    ) -> None:
        self._service = service or TableServiceClient.from_connection_string(connection_string)
        self._table_name = table_name
        self._table = None

    async def _table_client(self):
        if self._table is not None:
            return self._table
        client = self._service.get_table_client(self._table_name)
        try:
            await client.create_table()
        except ResourceExistsError:
            pass
        self._table = client
        return client

    async def _query(self, sheet: str, select: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        table = await self._table_client()
        filter_expr = f"PartitionKey eq '{_escape_odata(sheet)}'"
        return [entity async for entity in table.query_entities(query_filter=filter_expr, select=select)]

    async def get_values(self, range_name: str) -> List[SheetRow]:
        target = parse_range(range_name)
        entities = await self._query(target.sheet)
        rows: List[SheetRow] = []
        for entity in entities:
            try:
                row_index = int(entity.get("RowKey") or 0)
            except ValueError as exc:
                raise StoreError(f"Unexpected row key in sheet {target.sheet}: {entity.get('RowKey')!r}") from exc
            values: List[str] = []
            for col in range(target.first_col, target.last_col + 1):
                values.append(_cell(entity.get(column_letter(col))))
            while values and values[-1] == "":
                values.pop()
            rows.append(SheetRow(row_index, values))
        rows.sort(key=lambda row: row.row_index)
        return rows

    def _entity(self, sheet: str, row_index: int, first_col: int, values: List[Any]) -> Dict[str, Any]:
        entity: Dict[str, Any] = {"PartitionKey": sheet, "RowKey": _row_key(row_index)}
        for offset, value in enumerate(values):
            entity[column_letter(first_col + offset)] = _cell(value)
        return entity

    async def append_row(self, range_name: str, values: Iterable[Any]) -> int:
        target = parse_range(range_name)
        payload = list(values)
        table = await self._table_client()
        existing = await self._query(target.sheet, select=["RowKey"])
        next_index = max([int(item["RowKey"]) for item in existing] + [FIRST_DATA_ROW - 1]) + 1
        for _ in range(_MAX_APPEND_ATTEMPTS):
            try:
                await table.create_entity(entity=self._entity(target.sheet, next_index, target.first_col, payload))
                return next_index
            except ResourceExistsError:
                # Another writer claimed this row between our scan and our insert.
                logger.info("Row %s of %s already taken, appending past it", next_index, target.sheet)
                next_index += 1
        raise StoreError(f"Could not append to {target.sheet} after {_MAX_APPEND_ATTEMPTS} attempts")

    async def update_row(self, range_name: str, row_index: int, values: Iterable[Any]) -> None:
        target = parse_range(range_name)
        table = await self._table_client()
        entity = self._entity(target.sheet, row_index, target.first_col, list(values))
        await table.update_entity(entity=entity, mode=UpdateMode.MERGE)

    async def delete_row(self, sheet: str, row_index: int) -> None:
        table = await self._table_client()
        await table.delete_entity(partition_key=sheet, row_key=_row_key(row_index))

    async def close(self) -> None:
        if self._table is not None:
            await self._table.close()
        await self._service.close()


class MemorySheetStore(SheetStore):
    """Process-local workbook used when no storage account is configured."""

    def __init__(self, seed: Optional[Dict[str, List[List[Any]]]] = None) -> None:
        self._lock = Lock()
        self._sheets: Dict[str, Dict[int, List[str]]] = {}
        for sheet, rows in (seed or {}).items():
            self._sheets[sheet] = {
                FIRST_DATA_ROW + offset: [_cell(value) for value in row] for offset, row in enumerate(rows)
            }

    async def get_values(self, range_name: str) -> List[SheetRow]:
        target = parse_range(range_name)
        with self._lock:
            sheet = dict(self._sheets.get(target.sheet, {}))
        rows: List[SheetRow] = []
        for row_index in sorted(sheet):
            values = sheet[row_index][target.first_col : target.last_col + 1]
            while values and values[-1] == "":
                values = values[:-1]
            rows.append(SheetRow(row_index, list(values)))
        return rows

    async def append_row(self, range_name: str, values: Iterable[Any]) -> int:
        target = parse_range(range_name)
        cells = [""] * target.first_col + [_cell(value) for value in values]
        with self._lock:
            sheet = self._sheets.setdefault(target.sheet, {})
            row_index = max(list(sheet) + [FIRST_DATA_ROW - 1]) + 1
            sheet[row_index] = cells
        return row_index

    async def update_row(self, range_name: str, row_index: int, values: Iterable[Any]) -> None:
        target = parse_range(range_name)
        with self._lock:
            sheet = self._sheets.get(target.sheet, {})
            if row_index not in sheet:
                raise StoreError(f"Row {row_index} does not exist in {target.sheet}")
            cells = list(sheet[row_index])
            for offset, value in enumerate(values):
                col = target.first_col + offset
                while len(cells) <= col:
                    cells.append("")
                cells[col] = _cell(value)
            sheet[row_index] = cells

    async def delete_row(self, sheet: str, row_index: int) -> None:
        with self._lock:
            rows = self._sheets.get(sheet, {})
            if rows.pop(row_index, None) is None:
                raise StoreError(f"Row {row_index} does not exist in {sheet}")

    def dump(self, sheet: str) -> Dict[int, List[str]]:
        with self._lock:
            return {index: list(values) for index, values in self._sheets.get(sheet, {}).items()}


_store: Optional[SheetStore] = None
_store_lock = Lock()


def get_sheet_store() -> SheetStore:
    global _store
    if _store is not None:
        return _store
    with _store_lock:
        if _store is not None:
            return _store
        conn_str = get_storage_connection_string()
        if conn_str:
            _store = TableSheetStore(conn_str)
        else:
            logger.info("AZURE_STORAGE_CONNECTION_STRING not set, using in-memory workbook")
            _store = MemorySheetStore()
        return _store


def reset_sheet_store_for_tests(store: Optional[SheetStore] = None) -> None:
    global _store
    with _store_lock:
        _store = store
