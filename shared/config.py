import os
from dataclasses import dataclass, field
from typing import Dict, Optional


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return an environment setting with an optional default."""
    return os.getenv(name, default)


def _int_setting(name: str, default: int) -> int:
    raw = str(get_setting(name) or "").strip()
    try:
        parsed = int(raw) if raw else default
    except ValueError:
        parsed = default
    return max(1, parsed)


def get_storage_connection_string() -> Optional[str]:
    """
    Connection string for the Azure Table account backing the workbook.
    Falls back to the Functions host storage account when not set explicitly.
    """
    return get_setting("AZURE_STORAGE_CONNECTION_STRING") or get_setting("AzureWebJobsStorage")


def get_profile_service_settings() -> dict:
    """
    Settings for the external company-profile generator.
    Values are optional; the client raises when the URL is missing.
    """
    return {
        "url": get_setting("COMPANY_PROFILE_URL"),
        "api_key": get_setting("COMPANY_PROFILE_API_KEY"),
        "timeout": float(get_setting("COMPANY_PROFILE_TIMEOUT_SECONDS", "30") or 30),
    }


DEFAULT_SHEETS = {
    "companies": "Companies",
    "contacts": "Contacts",
    "raw_leads": "RawLeads",
    "opportunities": "Opportunities",
    "interactions": "Interactions",
    "event_logs": "EventLogs",
    "opportunity_contacts": "OpportunityContacts",
    "system_config": "SystemConfig",
}

# Last column letter of each sheet's fixed layout.
SHEET_LAST_COLUMNS = {
    "companies": "M",
    "contacts": "M",
    "raw_leads": "K",
    "opportunities": "X",
    "interactions": "I",
    "event_logs": "H",
    "opportunity_contacts": "F",
    "system_config": "H",
}


@dataclass(frozen=True)
class CrmConfig:
    """
    Immutable snapshot of everything the data-access layer reads as configuration.
    Built once per process (or per test) and handed to every reader, writer and service.
    """

    sheets: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SHEETS))
    opportunities_per_page: int = 10
    contacts_per_page: int = 20
    won_stage: str = "won"
    unclassified_stage: str = "unclassified"
    opportunity_status_active: str = "active"
    opportunity_status_archived: str = "archived"
    opportunity_status_cancelled: str = "cancelled"
    contact_status_upgraded: str = "upgraded"
    contact_status_filed: str = "filed"
    contact_status_linked: str = "linked"
    link_status_active: str = "active"
    system_event_type: str = "system"
    default_modifier: str = "system"
    stage_category: str = "opportunity_stage"
    company_stage_category: str = "company_stage"
    engagement_rating_category: str = "engagement_rating"
    company_type_category: str = "company_type"
    source_category: str = "opportunity_source"
    opportunity_type_category: str = "opportunity_type"
    team_member_category: str = "team_member"
    specification_category: str = "order_specification"

    def sheet_range(self, key: str) -> str:
        """A1-style range covering every column of the sheet, e.g. ``Opportunities!A:X``."""
        return f"{self.sheets[key]}!A:{SHEET_LAST_COLUMNS[key]}"


def load_crm_config() -> CrmConfig:
    """Build the config snapshot from environment settings."""
    sheets = dict(DEFAULT_SHEETS)
    for key in sheets:
        override = get_setting(f"CRM_SHEET_{key.upper()}")
        if override:
            sheets[key] = override.strip()
    return CrmConfig(
        sheets=sheets,
        opportunities_per_page=_int_setting("CRM_OPPORTUNITIES_PER_PAGE", 10),
        contacts_per_page=_int_setting("CRM_CONTACTS_PER_PAGE", 20),
        won_stage=(get_setting("CRM_WON_STAGE") or "won").strip(),
    )
