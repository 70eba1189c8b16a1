from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from repository.base_writer import BaseWriter, round_half_up, time_id
from repository.contact_reader import LINKS_KEY, ContactReader
from repository.opportunity_reader import CACHE_KEY, OPPORTUNITY_COLUMNS, OpportunityReader, opportunity_to_row
from repository.system_reader import SystemReader
from services.errors import NotFoundError, ValidationError
from utils.timefmt import utc_now_iso

logger = logging.getLogger(__name__)

VALUE_MODE_AUTO = "auto"
VALUE_MODE_MANUAL = "manual"

# Set once at creation or owned by the writer itself.
_PROTECTED_FIELDS = {"opportunityId", "createdTime", "lastUpdateTime", "lastModifier"}


def parse_specification(raw: Any) -> Dict[str, int]:
    """
    Order specification as ``{item value: quantity}``. Accepts the JSON map
    written today and the older comma-separated list (each item counted once).
    """
    if isinstance(raw, dict):
        parsed: Any = raw
    else:
        text = str(raw or "").strip()
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return {item.strip(): 1 for item in text.split(",") if item.strip()}
    if not isinstance(parsed, dict):
        return {}
    quantities: Dict[str, int] = {}
    for key, value in parsed.items():
        try:
            qty = int(float(value))
        except (TypeError, ValueError):
            continue
        if qty > 0:
            quantities[str(key)] = qty
    return quantities


def specification_value(quantities: Dict[str, int], spec_items: List[Dict[str, Any]]) -> int:
    """Sum of unit price x quantity; items without ``allow_quantity`` count once."""
    by_value = {item["value"]: item for item in spec_items}
    total = 0.0
    for key, qty in quantities.items():
        item = by_value.get(key)
        if not item:
            continue
        try:
            price = float(str(item.get("value2") or "0").replace(",", ""))
        except ValueError:
            price = 0.0
        if price <= 0:
            continue
        behavior = item.get("value3") or "boolean"
        total += price * (qty if behavior == "allow_quantity" else 1)
    return round_half_up(total)


def find_parent_cycle(opportunities: List[Dict[str, Any]], start_id: str) -> Optional[List[str]]:
    """Follow parent links from ``start_id``; return the id path if it loops back on itself."""
    parent_of = {opp["opportunityId"]: opp["parentOpportunityId"] for opp in opportunities}
    seen: List[str] = []
    current = start_id
    while current:
        if current in seen:
            return seen + [current]
        seen.append(current)
        current = parent_of.get(current, "")
    return None


class OpportunityWriter(BaseWriter):
    def __init__(
        self,
        store,
        config,
        opportunity_reader: OpportunityReader,
        contact_reader: ContactReader,
        system_reader: SystemReader,
    ) -> None:
        super().__init__(store, config)
        self.opportunity_reader = opportunity_reader
        self.contact_reader = contact_reader
        self.system_reader = system_reader

    async def create_opportunity(self, data: Dict[str, Any], modifier: str, current_stage: str) -> Dict[str, Any]:
        """Append one row in the fixed 24-column layout and return it with its row handle."""
        now = utc_now_iso()
        specification = data.get("potentialSpecification") or ""
        if isinstance(specification, dict):
            specification = json.dumps(specification, ensure_ascii=False)
        record: Dict[str, Any] = {name: "" for name in OPPORTUNITY_COLUMNS}
        record.update(
            {
                "opportunityId": time_id("OPP"),
                "opportunityName": data.get("opportunityName") or "",
                "customerCompany": data.get("customerCompany") or "",
                "mainContact": data.get("mainContact") or "",
                "contactPhone": data.get("contactPhone") or "",
                "assignee": data.get("assignee") or "",
                "opportunityType": data.get("opportunityType") or "",
                "opportunitySource": data.get("opportunitySource") or "",
                "currentStage": current_stage,
                "createdTime": now,
                "expectedCloseDate": data.get("expectedCloseDate") or "",
                "opportunityValue": str(data.get("opportunityValue") or ""),
                "currentStatus": self.config.opportunity_status_active,
                "lastUpdateTime": now,
                "notes": data.get("notes") or "",
                "lastModifier": modifier,
                "parentOpportunityId": data.get("parentOpportunityId") or "",
                "orderProbability": str(data.get("orderProbability") or ""),
                "potentialSpecification": specification,
                "salesChannel": data.get("salesChannel") or "",
                "deviceScale": data.get("deviceScale") or "",
                "opportunityValueType": VALUE_MODE_AUTO,
            }
        )
        row_index = await self.store.append_row(self.config.sheet_range("opportunities"), opportunity_to_row(record))
        self.opportunity_reader.invalidate_cache(CACHE_KEY)
        return {"rowIndex": row_index, **record}

    async def update_opportunity(self, row_index: int, update_data: Dict[str, Any], modifier: str) -> Dict[str, Any]:
        original = await self.opportunity_reader.find_by_row(row_index)
        if not original:
            raise NotFoundError(f"Opportunity not found at row {row_index}")

        updated = dict(original)
        for field_name in OPPORTUNITY_COLUMNS:
            if field_name in _PROTECTED_FIELDS or field_name not in update_data:
                continue
            value = update_data[field_name]
            if value is None:
                continue
            if field_name == "potentialSpecification" and isinstance(value, dict):
                value = json.dumps(value, ensure_ascii=False)
            updated[field_name] = str(value)
        if not updated["opportunityName"].strip():
            raise ValidationError("Opportunity name is required")
        if updated["parentOpportunityId"] and updated["parentOpportunityId"] != original["parentOpportunityId"]:
            family = [
                updated if opp["rowIndex"] == row_index else opp
                for opp in await self.opportunity_reader.get_all_opportunities()
            ]
            cycle = find_parent_cycle(family, updated["opportunityId"])
            if cycle:
                raise ValidationError(f"Parent link would create a cycle: {' -> '.join(cycle)}")

        if updated["opportunityValueType"] != VALUE_MODE_MANUAL and updated["potentialSpecification"]:
            system_config = await self.system_reader.get_system_config()
            spec_items = system_config.get(self.config.specification_category, [])
            quantities = parse_specification(updated["potentialSpecification"])
            updated["opportunityValue"] = str(specification_value(quantities, spec_items))

        updated["lastUpdateTime"] = utc_now_iso()
        updated["lastModifier"] = modifier

        await self.store.update_row(self.config.sheet_range("opportunities"), row_index, opportunity_to_row(updated))
        self.opportunity_reader.invalidate_cache(CACHE_KEY)
        logger.info("Opportunity %s updated by %s", updated["opportunityId"], modifier)
        return {"success": True, "data": updated}

    async def archive_opportunity(self, row_index: int, modifier: str) -> Dict[str, Any]:
        return await self.update_opportunity(
            row_index, {"currentStatus": self.config.opportunity_status_archived}, modifier
        )

    async def link_contact_to_opportunity(self, opportunity_id: str, contact_id: str, modifier: str) -> Dict[str, Any]:
        if not opportunity_id or not contact_id:
            raise ValidationError("opportunityId and contactId are required")

        async with self._key_lock(f"{opportunity_id}|{contact_id}"):
            self.contact_reader.invalidate_cache(LINKS_KEY)
            for link in await self.contact_reader.get_opportunity_contact_links():
                if (
                    link["opportunityId"] == opportunity_id
                    and link["contactId"] == contact_id
                    and link["status"] == self.config.link_status_active
                ):
                    return {"success": True, "linkId": link["linkId"], "created": False}

            link_id = time_id("LNK")
            row = [link_id, opportunity_id, contact_id, utc_now_iso(), self.config.link_status_active, modifier]
            await self.store.append_row(self.config.sheet_range("opportunity_contacts"), row)
            self.contact_reader.invalidate_cache(LINKS_KEY)
            return {"success": True, "linkId": link_id, "created": True}

