from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from repository.base_reader import BaseReader, cell, newest_first, paginate

CACHE_KEY = "opportunities"

# Column order of the Opportunities sheet. Positions are part of the stored
# layout; S-X were appended after the original 18 columns.
OPPORTUNITY_COLUMNS = [
    "opportunityId",
    "opportunityName",
    "customerCompany",
    "mainContact",
    "contactPhone",
    "assignee",
    "opportunityType",
    "opportunitySource",
    "currentStage",
    "createdTime",
    "expectedCloseDate",
    "opportunityValue",
    "currentStatus",
    "driveFolderLink",
    "lastUpdateTime",
    "notes",
    "lastModifier",
    "stageHistory",
    "parentOpportunityId",
    "orderProbability",
    "potentialSpecification",
    "salesChannel",
    "deviceScale",
    "opportunityValueType",
]


def parse_opportunity_row(row: Sequence[str], row_index: int) -> Dict[str, Any]:
    record: Dict[str, Any] = {"rowIndex": row_index}
    for index, name in enumerate(OPPORTUNITY_COLUMNS):
        record[name] = cell(row, index)
    return record


def opportunity_to_row(record: Dict[str, Any]) -> List[str]:
    return [str(record.get(name) or "") for name in OPPORTUNITY_COLUMNS]


class OpportunityReader(BaseReader):
    def __init__(self, store, config, cache, company_reader=None, system_reader=None) -> None:
        super().__init__(store, config, cache)
        self.company_reader = company_reader
        self.system_reader = system_reader

    async def get_all_opportunities(self) -> List[Dict[str, Any]]:
        """Every opportunity row, archived included, most recently touched first."""
        sort_key, reverse = newest_first("lastUpdateTime", "createdTime")
        return await self._fetch_and_cache(
            CACHE_KEY,
            self.config.sheet_range("opportunities"),
            parse_opportunity_row,
            sort_key,
            reverse,
        )

    async def get_opportunities(self) -> List[Dict[str, Any]]:
        archived = self.config.opportunity_status_archived
        return [opp for opp in await self.get_all_opportunities() if opp["currentStatus"] != archived]

    async def find_by_id(self, opportunity_id: str) -> Optional[Dict[str, Any]]:
        for opp in await self.get_all_opportunities():
            if opp["opportunityId"] == opportunity_id:
                return opp
        return None

    async def find_by_row(self, row_index: int) -> Optional[Dict[str, Any]]:
        for opp in await self.get_all_opportunities():
            if opp["rowIndex"] == row_index:
                return opp
        return None

    async def search_opportunities(self, query: str = "", page: int = 1, filters: Optional[Dict[str, Any]] = None):
        """
        Case-insensitive search over name and company. A query that starts with
        ``opp`` also matches an opportunity id exactly. ``page`` 0 returns the
        whole filtered list instead of a page envelope.
        """
        opportunities = await self.get_opportunities()
        filters = filters or {}

        term = str(query or "").strip().lower()
        if term:
            def matches(opp: Dict[str, Any]) -> bool:
                if term.startswith("opp") and opp["opportunityId"].lower() == term:
                    return True
                return term in opp["opportunityName"].lower() or term in opp["customerCompany"].lower()

            opportunities = [opp for opp in opportunities if matches(opp)]

        if filters.get("assignee"):
            opportunities = [opp for opp in opportunities if opp["assignee"] == filters["assignee"]]
        if filters.get("type"):
            opportunities = [opp for opp in opportunities if opp["opportunityType"] == filters["type"]]
        if filters.get("stage"):
            opportunities = [opp for opp in opportunities if opp["currentStage"] == filters["stage"]]

        return paginate(opportunities, page, self.config.opportunities_per_page)

    async def get_opportunities_by_county(self, opportunity_type: Optional[str] = None) -> List[Dict[str, Any]]:
        opportunities, companies = await asyncio.gather(
            self.get_opportunities(),
            self.company_reader.get_company_list(),
        )
        if opportunity_type:
            opportunities = [opp for opp in opportunities if opp["opportunityType"] == opportunity_type]

        county_by_company = {company["companyName"]: company["county"] for company in companies}
        counts: Dict[str, int] = {}
        for opp in opportunities:
            county = county_by_company.get(opp["customerCompany"])
            if county:
                counts[county] = counts.get(county, 0) + 1
        return [{"county": county, "count": count} for county, count in counts.items()]

    async def get_opportunities_by_stage(self) -> Dict[str, Dict[str, Any]]:
        opportunities, system_config = await asyncio.gather(
            self.get_opportunities(),
            self.system_reader.get_system_config(),
        )
        groups: Dict[str, Dict[str, Any]] = {}
        for stage in system_config.get(self.config.stage_category, []):
            groups[stage["value"]] = {"name": stage["note"] or stage["value"], "opportunities": [], "count": 0}

        for opp in opportunities:
            if opp["currentStatus"] != self.config.opportunity_status_active:
                continue
            group = groups.get(opp["currentStage"])
            if group is not None:
                group["opportunities"].append(opp)
                group["count"] += 1
        return groups
