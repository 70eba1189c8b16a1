from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from repository.base_writer import BaseWriter, time_id
from repository.company_reader import CACHE_KEY, CompanyReader, name_key
from services.errors import DuplicateError, NotFoundError, ValidationError
from utils.timefmt import utc_now_iso

logger = logging.getLogger(__name__)

_PARENTHETICAL_RE = re.compile(r"\([^)]*\)|（[^）]*）")
_CJK_SUFFIX_RE = re.compile(r"股份有限公司|有限公司|公司")
_LEGAL_SUFFIX_RE = re.compile(
    r"(?:\b(?:co\.?,?\s*ltd|inc|ltd|llc|l\.l\.c|corp|corporation|company|co|gmbh|plc|limited|pte|pty|s\.a|ag)\.?)$"
)

UPDATABLE_FIELDS = (
    "companyName",
    "phone",
    "address",
    "county",
    "introduction",
    "companyType",
    "customerStage",
    "engagementRating",
)


def normalize_company_name(name: Any) -> str:
    """
    Natural key for companies: case-folded and trimmed, with parenthetical text
    and common legal-entity suffixes removed.
    """
    text = str(name or "").lower().strip()
    text = _PARENTHETICAL_RE.sub(" ", text)
    text = _CJK_SUFFIX_RE.sub("", text)
    text = re.sub(r"\s+", " ", text).strip(" ,.")
    while True:
        stripped = _LEGAL_SUFFIX_RE.sub("", text).strip(" ,.")
        if stripped == text or not stripped:
            break
        text = stripped
    return text


def company_to_row(company: Dict[str, Any]) -> List[str]:
    return [
        company.get("companyId", ""),
        company.get("companyName", ""),
        company.get("phone", ""),
        company.get("address", ""),
        company.get("createdTime", ""),
        company.get("lastUpdateTime", ""),
        company.get("county", ""),
        company.get("creator", ""),
        company.get("lastModifier", ""),
        company.get("introduction", ""),
        company.get("companyType", ""),
        company.get("customerStage", ""),
        company.get("engagementRating", ""),
    ]


class CompanyWriter(BaseWriter):
    def __init__(self, store, config, company_reader: CompanyReader) -> None:
        super().__init__(store, config)
        self.company_reader = company_reader

    async def get_or_create_company(
        self,
        company_name: str,
        contact_info: Optional[Dict[str, Any]],
        modifier: str,
        opportunity_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Return the company whose normalized name matches, creating it otherwise.
        Resolution always runs against a fresh read of the sheet, never a
        cached id from an earlier call.
        """
        name = str(company_name or "").strip()
        key = normalize_company_name(name)
        if not key:
            raise ValidationError("Company name is required")
        contact_info = contact_info or {}
        opportunity_data = opportunity_data or {}

        async with self._key_lock(key):
            self.company_reader.invalidate_cache(CACHE_KEY)
            for company in await self.company_reader.get_company_list():
                if normalize_company_name(company["companyName"]) == key:
                    return {
                        "id": company["companyId"],
                        "name": company["companyName"],
                        "rowIndex": company["rowIndex"],
                        "created": False,
                    }

            now = utc_now_iso()
            record = {
                "companyId": time_id("COM"),
                "companyName": name,
                "phone": contact_info.get("phone") or "",
                "address": contact_info.get("address") or "",
                "createdTime": now,
                "lastUpdateTime": now,
                "county": opportunity_data.get("county") or "",
                "creator": modifier,
                "lastModifier": modifier,
                "introduction": "",
                "companyType": opportunity_data.get("companyType") or "",
                "customerStage": opportunity_data.get("customerStage") or "",
                "engagementRating": opportunity_data.get("engagementRating") or "",
            }
            row_index = await self.store.append_row(self.config.sheet_range("companies"), company_to_row(record))
            self.company_reader.invalidate_cache(CACHE_KEY)
            logger.info("Created company %s (%s) at row %s", record["companyName"], record["companyId"], row_index)
            return {"id": record["companyId"], "name": name, "rowIndex": row_index, "created": True}

    async def update_company(self, company_name: str, update_data: Dict[str, Any], modifier: str) -> Dict[str, Any]:
        original = await self.company_reader.find_company_by_name(company_name)
        if not original:
            raise NotFoundError(f"Company not found: {company_name}")

        updated = dict(original)
        for field_name in UPDATABLE_FIELDS:
            if field_name in update_data and update_data[field_name] is not None:
                value = str(update_data[field_name])
                updated[field_name] = value.strip() if field_name == "companyName" else value
        if not updated["companyName"]:
            raise ValidationError("Company name cannot be empty")
        if name_key(updated["companyName"]) != name_key(original["companyName"]):
            new_key = normalize_company_name(updated["companyName"])
            for other in await self.company_reader.get_company_list():
                if other["companyId"] != original["companyId"] and normalize_company_name(other["companyName"]) == new_key:
                    raise DuplicateError(f"Another company is already named {other['companyName']}")
            # Opportunities reference companies by name; they do not follow a rename.
            logger.warning(
                "Company %s renamed from '%s' to '%s'", original["companyId"], original["companyName"], updated["companyName"]
            )
        updated["lastUpdateTime"] = utc_now_iso()
        updated["lastModifier"] = modifier

        await self.store.update_row(
            self.config.sheet_range("companies"), original["rowIndex"], company_to_row(updated)
        )
        self.company_reader.invalidate_cache(CACHE_KEY)
        return {"success": True, "data": updated}

    async def delete_company(self, company_name: str) -> Dict[str, Any]:
        company = await self.company_reader.find_company_by_name(company_name)
        if not company:
            raise NotFoundError(f"Company not found: {company_name}")
        await self.store.delete_row(self.config.sheets["companies"], company["rowIndex"])
        self.company_reader.invalidate_cache(CACHE_KEY)
        return {"success": True, "message": f"Company {company['companyName']} deleted"}
