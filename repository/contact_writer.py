from __future__ import annotations

import logging
from typing import Any, Dict, List

from repository.base_writer import BaseWriter, time_id
from repository.company_reader import name_key
from repository.contact_reader import CONTACT_LIST_KEY, RAW_LEADS_KEY, ContactReader
from services.errors import NotFoundError, ValidationError
from utils.timefmt import utc_now_iso

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "MANUAL"
RAW_LEAD_STATUS_COLUMN = "K"

UPDATABLE_FIELDS = ("sourceId", "name", "companyId", "department", "position", "mobile", "phone", "email")


def raw_lead_source_id(row_index: Any) -> str:
    return f"BC-{row_index}"


def contact_to_row(contact: Dict[str, Any]) -> List[str]:
    return [
        contact.get("contactId", ""),
        contact.get("sourceId", ""),
        contact.get("name", ""),
        contact.get("companyId", ""),
        contact.get("department", ""),
        contact.get("position", ""),
        contact.get("mobile", ""),
        contact.get("phone", ""),
        contact.get("email", ""),
        contact.get("createdTime", ""),
        contact.get("lastUpdateTime", ""),
        contact.get("creator", ""),
        contact.get("lastModifier", ""),
    ]


class ContactWriter(BaseWriter):
    def __init__(self, store, config, contact_reader: ContactReader) -> None:
        super().__init__(store, config)
        self.contact_reader = contact_reader

    async def get_or_create_contact(
        self,
        contact_info: Dict[str, Any],
        company_data: Dict[str, Any],
        modifier: str,
    ) -> Dict[str, Any]:
        """Match on (name, company id); create a formal contact row when there is none."""
        name = str(contact_info.get("name") or "").strip()
        company_id = str(company_data.get("id") or "")
        if not name:
            raise ValidationError("Contact name is required")

        async with self._key_lock(f"{company_id}|{name_key(name)}"):
            self.contact_reader.invalidate_cache(CONTACT_LIST_KEY)
            for contact in await self.contact_reader.get_contact_list():
                if contact["companyId"] == company_id and name_key(contact["name"]) == name_key(name):
                    return {"id": contact["contactId"], "name": contact["name"], "rowIndex": contact["rowIndex"], "created": False}

            now = utc_now_iso()
            row_index_source = contact_info.get("rowIndex")
            record = {
                "contactId": time_id("CON"),
                "sourceId": raw_lead_source_id(row_index_source) if row_index_source else MANUAL_SOURCE,
                "name": name,
                "companyId": company_id,
                "department": contact_info.get("department") or "",
                "position": contact_info.get("position") or "",
                "mobile": contact_info.get("mobile") or "",
                "phone": contact_info.get("phone") or "",
                "email": contact_info.get("email") or "",
                "createdTime": now,
                "lastUpdateTime": now,
                "creator": modifier,
                "lastModifier": modifier,
            }
            row_index = await self.store.append_row(self.config.sheet_range("contacts"), contact_to_row(record))
            self.contact_reader.invalidate_cache(CONTACT_LIST_KEY)
            logger.info("Created contact %s (%s) under company %s", name, record["contactId"], company_id)
            return {"id": record["contactId"], "name": name, "rowIndex": row_index, "created": True}

    async def update_contact(self, contact_id: str, update_data: Dict[str, Any], modifier: str) -> Dict[str, Any]:
        contacts = await self.contact_reader.get_contact_list()
        original = next((item for item in contacts if item["contactId"] == contact_id), None)
        if not original:
            raise NotFoundError(f"Contact not found: {contact_id}")

        updated = dict(original)
        for field_name in UPDATABLE_FIELDS:
            if update_data.get(field_name) is not None:
                updated[field_name] = str(update_data[field_name])
        updated["lastUpdateTime"] = utc_now_iso()
        updated["lastModifier"] = modifier

        await self.store.update_row(self.config.sheet_range("contacts"), original["rowIndex"], contact_to_row(updated))
        self.contact_reader.invalidate_cache(CONTACT_LIST_KEY)
        return {"success": True, "data": updated}

    async def update_contact_status(self, row_index: int, status: str) -> Dict[str, Any]:
        """Write the status cell of a raw lead row."""
        await self.store.update_row(self._column_range("raw_leads", RAW_LEAD_STATUS_COLUMN), row_index, [status])
        self.contact_reader.invalidate_cache(RAW_LEADS_KEY)
        return {"success": True, "rowIndex": row_index, "status": status}
