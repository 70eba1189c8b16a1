from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from repository.activity_readers import EventLogReader, InteractionReader
from repository.company_reader import CompanyReader, name_key
from repository.company_writer import CompanyWriter, normalize_company_name
from repository.contact_reader import ContactReader
from repository.interaction_writer import InteractionWriter
from repository.opportunity_reader import OpportunityReader
from repository.system_reader import SystemReader, config_label
from services.errors import DependencyBlockedError, NotFoundError
from shared.config import CrmConfig
from utils.timefmt import first_timestamp_ms

logger = logging.getLogger(__name__)


def latest_interaction_by_opportunity(interactions: List[Dict[str, Any]]) -> Dict[str, int]:
    latest: Dict[str, int] = {}
    for interaction in interactions:
        opportunity_id = interaction["opportunityId"]
        if not opportunity_id:
            continue
        ts = first_timestamp_ms(interaction["interactionTime"], interaction["createdTime"])
        if ts is not None and ts > latest.get(opportunity_id, 0):
            latest[opportunity_id] = ts
    return latest


def with_effective_activity(opportunity: Dict[str, Any], latest: Dict[str, int]) -> Dict[str, Any]:
    """Copy of the opportunity carrying max(own update time, newest interaction time) in epoch ms."""
    own = first_timestamp_ms(opportunity["lastUpdateTime"], opportunity["createdTime"]) or 0
    return {**opportunity, "effectiveLastActivity": max(own, latest.get(opportunity["opportunityId"], 0))}


class CompanyService:
    def __init__(
        self,
        config: CrmConfig,
        *,
        company_reader: CompanyReader,
        contact_reader: ContactReader,
        opportunity_reader: OpportunityReader,
        interaction_reader: InteractionReader,
        event_log_reader: EventLogReader,
        system_reader: SystemReader,
        company_writer: CompanyWriter,
        interaction_writer: InteractionWriter,
    ) -> None:
        self.config = config
        self.company_reader = company_reader
        self.contact_reader = contact_reader
        self.opportunity_reader = opportunity_reader
        self.interaction_reader = interaction_reader
        self.event_log_reader = event_log_reader
        self.system_reader = system_reader
        self.company_writer = company_writer
        self.interaction_writer = interaction_writer

    async def _log_company_interaction(self, company_id: str, title: str, summary: str, modifier: str) -> None:
        try:
            await self.interaction_writer.create_interaction(
                {
                    "companyId": company_id,
                    "eventType": self.config.system_event_type,
                    "eventTitle": title,
                    "contentSummary": summary,
                    "recorder": modifier,
                }
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to write company interaction (companyId=%s): %s", company_id, exc)

    async def update_company(self, company_name: str, update_data: Dict[str, Any], modifier: str) -> Dict[str, Any]:
        original, system_config = await asyncio.gather(
            self.company_reader.find_company_by_name(company_name),
            self.system_reader.get_system_config(),
        )
        if not original:
            raise NotFoundError(f"Company not found: {company_name}")

        monitored = (
            ("customerStage", self.config.company_stage_category, "Customer stage"),
            ("engagementRating", self.config.engagement_rating_category, "Engagement rating"),
            ("companyType", self.config.company_type_category, "Company type"),
        )
        changes: List[str] = []
        for field_name, category, caption in monitored:
            if field_name not in update_data or update_data[field_name] is None:
                continue
            new_value = str(update_data[field_name])
            if new_value != original[field_name]:
                before = config_label(system_config, category, original[field_name])
                after = config_label(system_config, category, new_value)
                changes.append(f"{caption} changed from [{before}] to [{after}]")

        result = await self.company_writer.update_company(company_name, update_data, modifier)

        if result.get("success") and changes:
            await self._log_company_interaction(original["companyId"], "Company updated", "; ".join(changes), modifier)
        return result

    async def get_company_list_with_activity(self) -> List[Dict[str, Any]]:
        companies, interactions, opportunities = await asyncio.gather(
            self.company_reader.get_company_list(),
            self.interaction_reader.get_interactions(),
            self.opportunity_reader.get_opportunities(),
        )

        activity: Dict[str, int] = {}
        opportunity_counts: Dict[str, int] = {}
        for company in companies:
            ts = first_timestamp_ms(company["lastUpdateTime"], company["createdTime"])
            if ts is not None:
                activity[company["companyId"]] = ts
            opportunity_counts[company["companyId"]] = 0

        company_id_by_name = {
            normalize_company_name(company["companyName"]): company["companyId"] for company in companies
        }
        company_id_by_opportunity: Dict[str, str] = {}
        inactive = {self.config.opportunity_status_archived, self.config.opportunity_status_cancelled}
        for opp in opportunities:
            company_id = company_id_by_name.get(normalize_company_name(opp["customerCompany"]))
            if not company_id:
                continue
            company_id_by_opportunity[opp["opportunityId"]] = company_id
            if opp["currentStatus"] not in inactive:
                opportunity_counts[company_id] = opportunity_counts.get(company_id, 0) + 1

        for interaction in interactions:
            company_id = interaction["companyId"] or company_id_by_opportunity.get(interaction["opportunityId"])
            if not company_id:
                continue
            ts = first_timestamp_ms(interaction["interactionTime"], interaction["createdTime"])
            if ts is not None and ts > activity.get(company_id, 0):
                activity[company_id] = ts

        enriched = []
        for company in companies:
            last_activity: Optional[int] = activity.get(company["companyId"])
            if last_activity is None:
                last_activity = first_timestamp_ms(company["createdTime"])
            enriched.append(
                {
                    **company,
                    "lastActivity": last_activity,
                    "opportunityCount": opportunity_counts.get(company["companyId"], 0),
                }
            )
        enriched.sort(key=lambda item: item["lastActivity"] or 0, reverse=True)
        return enriched

    async def get_company_details(self, company_name: str) -> Dict[str, Any]:
        companies, contacts, opportunities, raw_leads, event_logs, interactions = await asyncio.gather(
            self.company_reader.get_company_list(),
            self.contact_reader.get_contact_list(),
            self.opportunity_reader.get_opportunities(),
            self.contact_reader.get_contacts(),
            self.event_log_reader.get_event_logs(),
            self.interaction_reader.get_interactions(),
        )
        wanted = name_key(company_name)
        potential_contacts = [lead for lead in raw_leads if lead["company"] and name_key(lead["company"]) == wanted]

        company = next((item for item in companies if name_key(item["companyName"]) == wanted), None)
        if not company:
            if potential_contacts:
                return {
                    "companyInfo": {"companyName": potential_contacts[0]["company"], "isPotential": True},
                    "contacts": [],
                    "opportunities": [],
                    "potentialContacts": potential_contacts,
                    "interactions": [],
                    "eventLogs": [],
                }
            raise NotFoundError(f"Company not found: {company_name}")

        latest = latest_interaction_by_opportunity(interactions)
        company_key = normalize_company_name(company["companyName"])
        related_opportunities = [
            with_effective_activity(opp, latest)
            for opp in opportunities
            if normalize_company_name(opp["customerCompany"]) == company_key
        ]
        related_contacts = [contact for contact in contacts if contact["companyId"] == company["companyId"]]
        related_event_logs = [log for log in event_logs if log["companyId"] == company["companyId"]]

        logger.info(
            "Company details for %s: %s contacts, %s opportunities, %s event logs",
            company["companyName"],
            len(related_contacts),
            len(related_opportunities),
            len(related_event_logs),
        )
        return {
            "companyInfo": company,
            "contacts": related_contacts,
            "opportunities": related_opportunities,
            "potentialContacts": potential_contacts,
            "interactions": [],
            "eventLogs": related_event_logs,
        }

    async def delete_company(self, company_name: str, modifier: str) -> Dict[str, Any]:
        """
        Delete a company only when nothing depends on it. Opportunities are
        checked first (by normalized company name, so rows spelled differently
        still count), then company-scoped event logs.
        """
        logger.info("Delete requested for company %s by %s", company_name, modifier)
        wanted = normalize_company_name(company_name)

        opportunities = await self.opportunity_reader.get_opportunities()
        related = [opp for opp in opportunities if normalize_company_name(opp["customerCompany"]) == wanted]
        if related:
            logger.warning("Refusing to delete %s: %s linked opportunities", company_name, len(related))
            raise DependencyBlockedError(
                f"this company still has {len(related)} linked opportunities "
                f"(e.g. \"{related[0]['opportunityName']}\"). Delete or reassign them first."
            )

        company, event_logs = await asyncio.gather(
            self.company_reader.find_company_by_name(company_name),
            self.event_log_reader.get_event_logs(),
        )
        if not company:
            raise NotFoundError(f"Company not found: {company_name}")

        company_logs = [log for log in event_logs if not log["opportunityId"] and log["companyId"] == company["companyId"]]
        if company_logs:
            logger.warning("Refusing to delete %s: %s company event logs", company_name, len(company_logs))
            raise DependencyBlockedError(
                f"this company still has {len(company_logs)} event logs. Resolve them first."
            )

        # Written before the delete; stays behind if the delete itself fails.
        await self._log_company_interaction(
            company["companyId"],
            "Company deleted",
            f"Company {company['companyName']} (ID: {company['companyId']}) deletion requested by {modifier}.",
            modifier,
        )

        result = await self.company_writer.delete_company(company_name)
        logger.info("Company %s deleted", company_name)
        return result
