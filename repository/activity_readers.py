from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from repository.base_reader import BaseReader, cell, newest_first

INTERACTIONS_KEY = "interactions"
EVENT_LOGS_KEY = "event_logs"


def parse_interaction_row(row: Sequence[str], row_index: int) -> Dict[str, Any]:
    return {
        "rowIndex": row_index,
        "interactionId": cell(row, 0),
        "opportunityId": cell(row, 1),
        "companyId": cell(row, 2),
        "interactionTime": cell(row, 3),
        "eventType": cell(row, 4),
        "eventTitle": cell(row, 5),
        "contentSummary": cell(row, 6),
        "recorder": cell(row, 7),
        "createdTime": cell(row, 8),
    }


def parse_event_log_row(row: Sequence[str], row_index: int) -> Dict[str, Any]:
    return {
        "rowIndex": row_index,
        "eventId": cell(row, 0),
        "eventName": cell(row, 1),
        "opportunityId": cell(row, 2),
        "companyId": cell(row, 3),
        "creator": cell(row, 4),
        "createdTime": cell(row, 5),
        "lastModifiedTime": cell(row, 6),
        "content": cell(row, 7),
    }


class InteractionReader(BaseReader):
    async def get_interactions(self) -> List[Dict[str, Any]]:
        sort_key, reverse = newest_first("interactionTime", "createdTime")
        return await self._fetch_and_cache(
            INTERACTIONS_KEY,
            self.config.sheet_range("interactions"),
            parse_interaction_row,
            sort_key,
            reverse,
        )

    async def get_interactions_for(
        self,
        *,
        opportunity_id: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        interactions = await self.get_interactions()
        if opportunity_id:
            interactions = [item for item in interactions if item["opportunityId"] == opportunity_id]
        if company_id:
            interactions = [item for item in interactions if item["companyId"] == company_id]
        return interactions


class EventLogReader(BaseReader):
    async def get_event_logs(self) -> List[Dict[str, Any]]:
        sort_key, reverse = newest_first("lastModifiedTime", "createdTime")
        return await self._fetch_and_cache(
            EVENT_LOGS_KEY,
            self.config.sheet_range("event_logs"),
            parse_event_log_row,
            sort_key,
            reverse,
        )
