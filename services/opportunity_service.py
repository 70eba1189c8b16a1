from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from repository.activity_readers import EventLogReader, InteractionReader
from repository.company_reader import CompanyReader, name_key
from repository.contact_reader import ContactReader
from repository.opportunity_reader import OpportunityReader
from services.company_service import latest_interaction_by_opportunity, with_effective_activity
from services.errors import NotFoundError
from shared.config import CrmConfig

logger = logging.getLogger(__name__)


class OpportunityService:
    def __init__(
        self,
        config: CrmConfig,
        *,
        opportunity_reader: OpportunityReader,
        company_reader: CompanyReader,
        contact_reader: ContactReader,
        interaction_reader: InteractionReader,
        event_log_reader: EventLogReader,
    ) -> None:
        self.config = config
        self.opportunity_reader = opportunity_reader
        self.company_reader = company_reader
        self.contact_reader = contact_reader
        self.interaction_reader = interaction_reader
        self.event_log_reader = event_log_reader

    async def search_opportunities(self, query: str = "", page: int = 1, filters: Optional[Dict[str, Any]] = None):
        return await self.opportunity_reader.search_opportunities(query, page, filters)

    async def get_opportunity_details(self, opportunity_id: str) -> Dict[str, Any]:
        opportunities, interactions, event_logs, contacts, links, raw_leads, companies = await asyncio.gather(
            self.opportunity_reader.get_all_opportunities(),
            self.interaction_reader.get_interactions_for(opportunity_id=opportunity_id),
            self.event_log_reader.get_event_logs(),
            self.contact_reader.get_contact_list(),
            self.contact_reader.get_opportunity_contact_links(),
            self.contact_reader.get_contacts(),
            self.company_reader.get_company_list(),
        )

        opportunity = next((opp for opp in opportunities if opp["opportunityId"] == opportunity_id), None)
        if not opportunity:
            raise NotFoundError(f"Opportunity not found: {opportunity_id}")

        latest = latest_interaction_by_opportunity(interactions)
        company_names = {company["companyId"]: company["companyName"] for company in companies}
        contacts_by_id = {contact["contactId"]: contact for contact in contacts}

        linked_contacts = []
        for link in links:
            if link["opportunityId"] != opportunity_id or link["status"] != self.config.link_status_active:
                continue
            contact = contacts_by_id.get(link["contactId"])
            if contact:
                linked_contacts.append(
                    {**contact, "linkId": link["linkId"], "companyName": company_names.get(contact["companyId"], "")}
                )

        company_key = name_key(opportunity["customerCompany"])
        potential_contacts = [
            lead for lead in raw_leads if company_key and name_key(lead["company"]) == company_key
        ]

        parent: Optional[Dict[str, Any]] = None
        if opportunity["parentOpportunityId"]:
            parent = next(
                (opp for opp in opportunities if opp["opportunityId"] == opportunity["parentOpportunityId"]), None
            )
        children = [opp for opp in opportunities if opp["parentOpportunityId"] == opportunity_id]

        related_logs = [log for log in event_logs if log["opportunityId"] == opportunity_id]
        logger.info(
            "Opportunity details for %s: %s interactions, %s linked contacts",
            opportunity_id,
            len(interactions),
            len(linked_contacts),
        )
        return {
            "opportunityInfo": with_effective_activity(opportunity, latest),
            "interactions": interactions,
            "eventLogs": related_logs,
            "linkedContacts": linked_contacts,
            "potentialContacts": potential_contacts,
            "parentOpportunity": parent,
            "childOpportunities": children,
        }
