import asyncio
from typing import Any, Dict, List, Optional

from repository.opportunity_reader import opportunity_to_row
from services.container import build_services
from services.errors import StoreError
from services.profile_client import CompanyProfileClient
from services.sheet_store import MemorySheetStore, parse_range
from shared.config import CrmConfig

COMPANY_FIELDS = [
    "companyId",
    "companyName",
    "phone",
    "address",
    "createdTime",
    "lastUpdateTime",
    "county",
    "creator",
    "lastModifier",
    "introduction",
    "companyType",
    "customerStage",
    "engagementRating",
]


def company_row(company_id: str, name: str, created: str = "2024-01-01T00:00:00.000Z", **fields: Any) -> List[str]:
    record = {"companyId": company_id, "companyName": name, "createdTime": created, **fields}
    return [str(record.get(field_name, "")) for field_name in COMPANY_FIELDS]


def opportunity_row(opportunity_id: str, name: str, company: str, **fields: Any) -> List[str]:
    record = {
        "opportunityId": opportunity_id,
        "opportunityName": name,
        "customerCompany": company,
        "currentStatus": "active",
        "createdTime": "2024-01-01T00:00:00.000Z",
        **fields,
    }
    return opportunity_to_row(record)


def interaction_row(
    interaction_id: str,
    *,
    opportunity_id: str = "",
    company_id: str = "",
    at: str = "2024-01-01T00:00:00.000Z",
    title: str = "Call",
) -> List[str]:
    return [interaction_id, opportunity_id, company_id, at, "call", title, "", "tester", at]


def event_log_row(event_id: str, *, opportunity_id: str = "", company_id: str = "") -> List[str]:
    return [event_id, "Visit", opportunity_id, company_id, "tester", "2024-01-02T00:00:00.000Z", "", "notes"]


def raw_lead_row(name: str, company: str, *, mobile: str = "", status: str = "") -> List[str]:
    return ["2024-01-01T00:00:00.000Z", name, company, "Manager", "Sales", "02-1234", mobile, "a@b.test", "", "Road 1", status]


def contact_row(contact_id: str, name: str, company_id: str, source: str = "MANUAL") -> List[str]:
    return [contact_id, source, name, company_id, "", "", "", "", "", "2024-01-01T00:00:00.000Z", "", "tester", "tester"]


def config_row(category: str, value: str, note: str = "", order: int = 1, value2: str = "", value3: str = "") -> List[str]:
    return [category, value, note, str(order), "", "", value2, value3]


class RecordingStore(MemorySheetStore):
    """In-memory workbook that counts reads, can slow them down, and can refuse appends per sheet."""

    def __init__(self, seed=None, read_delay: float = 0.0) -> None:
        super().__init__(seed)
        self.read_delay = read_delay
        self.reads: Dict[str, int] = {}
        self.failing_sheets: set = set()

    async def get_values(self, range_name):
        sheet = parse_range(range_name).sheet
        self.reads[sheet] = self.reads.get(sheet, 0) + 1
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        return await super().get_values(range_name)

    async def append_row(self, range_name, values):
        sheet = parse_range(range_name).sheet
        if sheet in self.failing_sheets:
            raise StoreError(f"append to {sheet} rejected")
        return await super().append_row(range_name, values)


def make_services(
    seed: Optional[Dict[str, List[List[Any]]]] = None,
    config: Optional[CrmConfig] = None,
    read_delay: float = 0.0,
):
    store = RecordingStore(seed, read_delay=read_delay)
    services = build_services(
        store,
        config or CrmConfig(),
        profile_client=CompanyProfileClient(url="http://profile.test/generate"),
    )
    return services, store
