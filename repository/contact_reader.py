from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from repository.base_reader import BaseReader, cell, newest_first, paginate

RAW_LEADS_KEY = "raw_leads"
CONTACT_LIST_KEY = "contact_list"
LINKS_KEY = "opportunity_contacts"


def parse_raw_lead_row(row: Sequence[str], row_index: int) -> Dict[str, Any]:
    return {
        "rowIndex": row_index,
        "createdTime": cell(row, 0),
        "name": cell(row, 1),
        "company": cell(row, 2),
        "position": cell(row, 3),
        "department": cell(row, 4),
        "phone": cell(row, 5),
        "mobile": cell(row, 6),
        "email": cell(row, 7),
        "website": cell(row, 8),
        "address": cell(row, 9),
        "status": cell(row, 10),
    }


def parse_contact_row(row: Sequence[str], row_index: int) -> Dict[str, Any]:
    return {
        "rowIndex": row_index,
        "contactId": cell(row, 0),
        "sourceId": cell(row, 1),
        "name": cell(row, 2),
        "companyId": cell(row, 3),
        "department": cell(row, 4),
        "position": cell(row, 5),
        "mobile": cell(row, 6),
        "phone": cell(row, 7),
        "email": cell(row, 8),
        "createdTime": cell(row, 9),
        "lastUpdateTime": cell(row, 10),
        "creator": cell(row, 11),
        "lastModifier": cell(row, 12),
    }


def parse_link_row(row: Sequence[str], row_index: int) -> Dict[str, Any]:
    return {
        "rowIndex": row_index,
        "linkId": cell(row, 0),
        "opportunityId": cell(row, 1),
        "contactId": cell(row, 2),
        "createdTime": cell(row, 3),
        "status": cell(row, 4),
        "creator": cell(row, 5),
    }


class ContactReader(BaseReader):
    async def get_contacts(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Raw leads, newest first."""
        sort_key, reverse = newest_first("createdTime")
        leads = await self._fetch_and_cache(
            RAW_LEADS_KEY,
            self.config.sheet_range("raw_leads"),
            parse_raw_lead_row,
            sort_key,
            reverse,
        )
        leads = [lead for lead in leads if lead["name"] or lead["company"]]
        return leads[:limit] if limit else leads

    async def get_contact_list(self) -> List[Dict[str, Any]]:
        return await self._fetch_and_cache(
            CONTACT_LIST_KEY,
            self.config.sheet_range("contacts"),
            parse_contact_row,
        )

    async def get_opportunity_contact_links(self) -> List[Dict[str, Any]]:
        return await self._fetch_and_cache(
            LINKS_KEY,
            self.config.sheet_range("opportunity_contacts"),
            parse_link_row,
        )

    async def search_contacts(self, query: str = "", page: int = 1):
        leads = await self.get_contacts()
        term = str(query or "").strip().lower()
        if term:
            leads = [
                lead
                for lead in leads
                if term in lead["name"].lower() or term in lead["company"].lower()
            ]
        return paginate(leads, page, self.config.contacts_per_page)

