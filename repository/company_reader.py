from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from repository.base_reader import BaseReader, cell, newest_first

CACHE_KEY = "companies"


def name_key(value: Any) -> str:
    """Lookup key used for company-name matches across sheets: case-folded, trimmed."""
    return str(value or "").strip().lower()


def parse_company_row(row: Sequence[str], row_index: int) -> Dict[str, Any]:
    return {
        "rowIndex": row_index,
        "companyId": cell(row, 0),
        "companyName": cell(row, 1),
        "phone": cell(row, 2),
        "address": cell(row, 3),
        "createdTime": cell(row, 4),
        "lastUpdateTime": cell(row, 5),
        "county": cell(row, 6),
        "creator": cell(row, 7),
        "lastModifier": cell(row, 8),
        "introduction": cell(row, 9),
        "companyType": cell(row, 10),
        "customerStage": cell(row, 11),
        "engagementRating": cell(row, 12),
    }


class CompanyReader(BaseReader):
    async def get_company_list(self) -> List[Dict[str, Any]]:
        sort_key, reverse = newest_first("lastUpdateTime", "createdTime")
        return await self._fetch_and_cache(
            CACHE_KEY,
            self.config.sheet_range("companies"),
            parse_company_row,
            sort_key,
            reverse,
        )

    async def find_company_by_name(self, company_name: str) -> Optional[Dict[str, Any]]:
        wanted = name_key(company_name)
        for company in await self.get_company_list():
            if name_key(company["companyName"]) == wanted:
                return company
        return None
