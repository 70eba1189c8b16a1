from __future__ import annotations

from typing import Any, Dict

from repository.activity_readers import INTERACTIONS_KEY, InteractionReader
from repository.base_writer import BaseWriter, time_id
from services.errors import ValidationError
from utils.timefmt import utc_now_iso


class InteractionWriter(BaseWriter):
    def __init__(self, store, config, interaction_reader: InteractionReader) -> None:
        super().__init__(store, config)
        self.interaction_reader = interaction_reader

    async def create_interaction(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("opportunityId") and not data.get("companyId"):
            raise ValidationError("An interaction needs an opportunityId or a companyId")
        now = utc_now_iso()
        record = {
            "interactionId": time_id("INT"),
            "opportunityId": data.get("opportunityId") or "",
            "companyId": data.get("companyId") or "",
            "interactionTime": data.get("interactionTime") or now,
            "eventType": data.get("eventType") or self.config.system_event_type,
            "eventTitle": data.get("eventTitle") or "",
            "contentSummary": data.get("contentSummary") or "",
            "recorder": data.get("recorder") or self.config.default_modifier,
            "createdTime": now,
        }
        row = [
            record["interactionId"],
            record["opportunityId"],
            record["companyId"],
            record["interactionTime"],
            record["eventType"],
            record["eventTitle"],
            record["contentSummary"],
            record["recorder"],
            record["createdTime"],
        ]
        row_index = await self.store.append_row(self.config.sheet_range("interactions"), row)
        self.interaction_reader.invalidate_cache(INTERACTIONS_KEY)
        return {"rowIndex": row_index, **record}
