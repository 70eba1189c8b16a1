from __future__ import annotations

import logging
from typing import Any, Awaitable, Dict, List, Optional

from repository.company_writer import CompanyWriter
from repository.contact_reader import ContactReader
from repository.contact_writer import MANUAL_SOURCE, ContactWriter, raw_lead_source_id
from repository.interaction_writer import InteractionWriter
from repository.opportunity_reader import CACHE_KEY as OPPORTUNITY_CACHE_KEY
from repository.opportunity_writer import OpportunityWriter
from repository.system_reader import SystemReader
from services.errors import CrmError, NotFoundError, ValidationError, WorkflowStepError
from shared.config import CrmConfig

logger = logging.getLogger(__name__)

CREATE_STEPS = 6


class _WorkflowRun:
    """Runs workflow steps in order and records what has been written so far."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.completed: List[str] = []
        self.written: Dict[str, Any] = {}

    async def step(self, label: str, awaitable: Awaitable[Any]) -> Any:
        try:
            result = await awaitable
        except CrmError as exc:
            if not self.completed:
                raise
            logger.error("%s stopped at %s; completed: %s", self.name, label, ", ".join(self.completed))
            raise WorkflowStepError(label, self.completed, self.written) from exc
        except Exception as exc:
            logger.error("%s failed at %s: %s", self.name, label, exc)
            raise WorkflowStepError(label, self.completed, self.written) from exc
        self.completed.append(label)
        return result


class WorkflowService:
    """
    Compound operations built from independent sheet writes. Steps run
    sequentially; a failure stops the run and completed steps stay written.
    """

    def __init__(
        self,
        config: CrmConfig,
        *,
        company_writer: CompanyWriter,
        contact_writer: ContactWriter,
        opportunity_writer: OpportunityWriter,
        interaction_writer: InteractionWriter,
        contact_reader: ContactReader,
        system_reader: SystemReader,
    ) -> None:
        self.config = config
        self.company_writer = company_writer
        self.contact_writer = contact_writer
        self.opportunity_writer = opportunity_writer
        self.interaction_writer = interaction_writer
        self.contact_reader = contact_reader
        self.system_reader = system_reader

    async def _find_raw_lead(self, row_index: int) -> Dict[str, Any]:
        for lead in await self.contact_reader.get_contacts():
            if lead["rowIndex"] == row_index:
                return lead
        raise NotFoundError(f"Raw lead not found (rowIndex: {row_index})")

    async def file_contact(self, row_index: int, modifier: str) -> Dict[str, Any]:
        """Promote a raw lead to a formal company and contact without opening an opportunity."""
        logger.info("Filing raw lead at row %s", row_index)
        lead = await self._find_raw_lead(row_index)
        if not lead["company"] or not lead["name"]:
            raise ValidationError("Cannot file this lead: name or company is missing")

        run = _WorkflowRun("file_contact")
        company = await run.step(
            "company", self.company_writer.get_or_create_company(lead["company"], lead, modifier, {})
        )
        run.written["companyId"] = company["id"]
        logger.info("  step 1/3: company ready (%s)", company["id"])

        contact = await run.step("contact", self.contact_writer.get_or_create_contact(lead, company, modifier))
        run.written["contactId"] = contact["id"]
        logger.info("  step 2/3: contact ready (%s)", contact["id"])

        await run.step(
            "lead_status", self.contact_writer.update_contact_status(row_index, self.config.contact_status_filed)
        )
        logger.info("  step 3/3: raw lead marked %s", self.config.contact_status_filed)

        return {
            "success": True,
            "message": "Lead filed",
            "data": {"company": company, "contact": contact},
        }

    async def link_business_card_to_contact(self, contact_id: str, row_index: int, modifier: str) -> Dict[str, Any]:
        """Overwrite a manually created contact with the details from a raw lead and mark that lead linked."""
        logger.info("Linking raw lead row %s to contact %s", row_index, contact_id)
        contacts = await self.contact_reader.get_contact_list()
        target = next((item for item in contacts if item["contactId"] == contact_id), None)
        if not target:
            raise NotFoundError(f"Contact not found: {contact_id}")
        card = await self._find_raw_lead(row_index)
        if target["sourceId"] != MANUAL_SOURCE:
            raise ValidationError("Only manually created contacts can be linked to a business card")

        run = _WorkflowRun("link_business_card")
        company = await run.step(
            "company", self.company_writer.get_or_create_company(card["company"], card, modifier, {})
        )
        run.written["companyId"] = company["id"]

        updated_fields = {
            "sourceId": raw_lead_source_id(card["rowIndex"]),
            "name": card["name"],
            "companyId": company["id"],
            "department": card["department"],
            "position": card["position"],
            "mobile": card["mobile"],
            "phone": card["phone"],
            "email": card["email"],
        }
        await run.step("contact", self.contact_writer.update_contact(contact_id, updated_fields, modifier))
        logger.info("  step 1/2: contact %s overwritten from raw lead", contact_id)

        await run.step(
            "lead_status", self.contact_writer.update_contact_status(row_index, self.config.contact_status_linked)
        )
        logger.info("  step 2/2: raw lead marked %s", self.config.contact_status_linked)

        return {
            "success": True,
            "message": "Business card linked to contact",
            "data": {"contactId": contact_id, "updatedFields": updated_fields},
        }

    async def upgrade_contact_to_opportunity(
        self, row_index: int, opportunity_data: Dict[str, Any], modifier: Optional[str] = None
    ) -> Dict[str, Any]:
        logger.info("Upgrading raw lead at row %s to an opportunity", row_index)
        lead = await self._find_raw_lead(row_index)

        complete_data = {
            **opportunity_data,
            "customerCompany": lead["company"],
            "mainContact": lead["name"],
            "contactPhone": lead["mobile"] or lead["phone"],
        }
        source = {
            "name": lead["name"],
            "company": lead["company"],
            "phone": lead["phone"],
            "mobile": lead["mobile"],
            "email": lead["email"],
            "position": lead["position"],
            "department": lead["department"],
            "address": lead["address"],
            "rowIndex": lead["rowIndex"],
        }
        created = await self._create_full_opportunity_workflow(complete_data, source, modifier)
        return {"success": True, "message": "Lead upgraded to opportunity", "data": created}

    async def create_opportunity(self, opportunity_data: Dict[str, Any], modifier: Optional[str] = None) -> Dict[str, Any]:
        logger.info("Creating opportunity %s", opportunity_data.get("opportunityName"))
        source = {
            "name": opportunity_data.get("mainContact") or "",
            "company": opportunity_data.get("customerCompany") or "",
            "phone": opportunity_data.get("contactPhone") or "",
            "email": "",
            "position": "",
        }
        created = await self._create_full_opportunity_workflow(opportunity_data, source, modifier)
        return {"success": True, "message": "Opportunity created", "data": created}

    async def _default_stage(self) -> str:
        stages = (await self.system_reader.get_system_config()).get(self.config.stage_category, [])
        if stages:
            return stages[0]["value"]
        logger.warning("No '%s' entries configured; using '%s'", self.config.stage_category, self.config.unclassified_stage)
        return self.config.unclassified_stage

    async def _create_full_opportunity_workflow(
        self,
        opportunity_data: Dict[str, Any],
        source: Dict[str, Any],
        modifier: Optional[str] = None,
    ) -> Dict[str, Any]:
        modifier = modifier or opportunity_data.get("assignee") or self.config.default_modifier
        if not str(opportunity_data.get("opportunityName") or "").strip():
            raise ValidationError("Opportunity name is required")
        if not str(opportunity_data.get("customerCompany") or "").strip():
            raise ValidationError("Customer company is required")
        if not str(source.get("name") or "").strip():
            raise ValidationError("Main contact is required")
        from_lead = bool(source.get("rowIndex"))
        logger.info("Running opportunity creation (modifier=%s, from_lead=%s)", modifier, from_lead)

        run = _WorkflowRun("create_opportunity")
        company = await run.step(
            "company",
            self.company_writer.get_or_create_company(
                opportunity_data["customerCompany"], source, modifier, opportunity_data
            ),
        )
        run.written["companyId"] = company["id"]
        logger.info("  step 1/%s: company ready (%s)", CREATE_STEPS, company["id"])

        contact = await run.step("contact", self.contact_writer.get_or_create_contact(source, company, modifier))
        run.written["contactId"] = contact["id"]
        logger.info("  step 2/%s: contact ready (%s)", CREATE_STEPS, contact["id"])

        stage = opportunity_data.get("currentStage") or await run.step("stage", self._default_stage())
        created = await run.step(
            "opportunity",
            self.opportunity_writer.create_opportunity(
                {**opportunity_data, "customerCompany": company["name"]}, modifier, stage
            ),
        )
        run.written["opportunityId"] = created["opportunityId"]
        run.written["rowIndex"] = created["rowIndex"]
        self.opportunity_writer.opportunity_reader.invalidate_cache(OPPORTUNITY_CACHE_KEY)
        logger.info("  step 3/%s: opportunity written (%s)", CREATE_STEPS, created["opportunityId"])

        if from_lead:
            title = "Upgraded raw lead to opportunity"
            summary = f"Upgraded raw lead {source['name']} ({source['company']}) to a formal opportunity."
        else:
            title = "Created opportunity manually"
            summary = f"Created opportunity \"{created['opportunityName']}\" manually."
        interaction = await run.step(
            "interaction",
            self.interaction_writer.create_interaction(
                {
                    "opportunityId": created["opportunityId"],
                    "eventType": self.config.system_event_type,
                    "eventTitle": title,
                    "contentSummary": summary,
                    "recorder": modifier,
                }
            ),
        )
        run.written["interactionId"] = interaction["interactionId"]
        logger.info("  step 4/%s: creation interaction written", CREATE_STEPS)

        link = await run.step(
            "contact_link",
            self.opportunity_writer.link_contact_to_opportunity(created["opportunityId"], contact["id"], modifier),
        )
        run.written["linkId"] = link["linkId"]
        logger.info("  step 5/%s: primary contact linked", CREATE_STEPS)

        if from_lead:
            await run.step(
                "lead_status",
                self.contact_writer.update_contact_status(source["rowIndex"], self.config.contact_status_upgraded),
            )
            logger.info("  step 6/%s: raw lead marked %s", CREATE_STEPS, self.config.contact_status_upgraded)

        logger.info("Opportunity %s created", created["opportunityId"])
        return created
