import asyncio
import unittest

from crm_fixtures import company_row, config_row, contact_row, make_services, raw_lead_row
from services.errors import NotFoundError, ValidationError, WorkflowStepError


class CreateOpportunityWorkflowTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.services, self.store = make_services(
            {
                "Companies": [company_row("COM1", "Acme Ltd")],
                "SystemConfig": [config_row("opportunity_stage", "qualify", "Qualify", 2), config_row("opportunity_stage", "lead", "Lead", 1)],
            }
        )
        self.payload = {
            "opportunityName": "Widgets rollout",
            "customerCompany": "ACME",
            "mainContact": "Jane Doe",
            "contactPhone": "0912",
            "assignee": "alice",
        }

    async def test_creates_every_record_once(self):
        result = await self.services.workflow_service.create_opportunity(self.payload, "bob")
        created = result["data"]
        self.assertTrue(result["success"])
        self.assertIsNotNone(created["rowIndex"])
        self.assertTrue(created["opportunityId"].startswith("OPP"))
        self.assertEqual(created["currentStage"], "lead")
        self.assertEqual(created["lastModifier"], "bob")

        self.assertEqual(len(self.store.dump("Companies")), 1)
        contacts = list(self.store.dump("Contacts").values())
        self.assertEqual(len(contacts), 1)
        self.assertEqual(contacts[0][1], "MANUAL")
        self.assertEqual(contacts[0][3], "COM1")

        interactions = [row for row in self.store.dump("Interactions").values() if row[1] == created["opportunityId"]]
        self.assertEqual(len(interactions), 1)
        self.assertEqual(interactions[0][5], "Created opportunity manually")

        links = list(self.store.dump("OpportunityContacts").values())
        self.assertEqual(len(links), 1)
        self.assertEqual(links[0][1:3], [created["opportunityId"], contacts[0][0]])

    async def test_concurrent_creates_get_distinct_ids(self):
        results = await asyncio.gather(
            *(
                self.services.workflow_service.create_opportunity(
                    {**self.payload, "opportunityName": f"Deal {i}", "customerCompany": f"Company {i}"}, "bob"
                )
                for i in range(5)
            )
        )
        ids = [result["data"]["opportunityId"] for result in results]
        self.assertEqual(len(set(ids)), 5)

        interactions = list(self.store.dump("Interactions").values())
        for opportunity_id in ids:
            self.assertEqual(len([row for row in interactions if row[1] == opportunity_id]), 1)
            found = await self.services.opportunity_reader.find_by_id(opportunity_id)
            self.assertEqual(found["opportunityId"], opportunity_id)

    async def test_new_opportunity_visible_to_readers(self):
        await self.services.opportunity_reader.get_opportunities()
        result = await self.services.workflow_service.create_opportunity(self.payload, "bob")
        found = await self.services.opportunity_reader.find_by_id(result["data"]["opportunityId"])
        self.assertIsNotNone(found)

    async def test_default_stage_when_none_configured(self):
        services, _ = make_services()
        result = await services.workflow_service.create_opportunity(self.payload)
        self.assertEqual(result["data"]["currentStage"], "unclassified")
        self.assertEqual(result["data"]["lastModifier"], "alice")

    async def test_explicit_stage_kept(self):
        result = await self.services.workflow_service.create_opportunity({**self.payload, "currentStage": "qualify"}, "bob")
        self.assertEqual(result["data"]["currentStage"], "qualify")

    async def test_missing_name_rejected_before_any_write(self):
        with self.assertRaises(ValidationError):
            await self.services.workflow_service.create_opportunity({**self.payload, "opportunityName": ""}, "bob")
        self.assertEqual(self.store.dump("Contacts"), {})

    async def test_failure_reports_completed_steps(self):
        self.store.failing_sheets.add("Interactions")
        with self.assertRaises(WorkflowStepError) as ctx:
            await self.services.workflow_service.create_opportunity(self.payload, "bob")
        error = ctx.exception
        self.assertEqual(error.step, "interaction")
        self.assertIn("opportunity", error.completed)
        self.assertIn("opportunityId", error.written)
        self.assertIsNotNone(error.__cause__)
        # No compensation: the opportunity row stays behind.
        self.assertEqual(len(self.store.dump("Opportunities")), 1)
        self.assertEqual(self.store.dump("OpportunityContacts"), {})


class RawLeadWorkflowTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.services, self.store = make_services(
            {
                "RawLeads": [raw_lead_row("Jane Doe", "Globex", mobile="0933"), raw_lead_row("", "")],
                "Contacts": [contact_row("CON1", "J. Doe", "COM0"), contact_row("CON2", "Sam", "COM0", source="BC-9")],
            }
        )

    async def test_upgrade_marks_lead_and_links_source(self):
        result = await self.services.workflow_service.upgrade_contact_to_opportunity(
            2, {"opportunityName": "Globex expansion"}, "bob"
        )
        created = result["data"]
        self.assertEqual(created["customerCompany"], "Globex")
        self.assertEqual(created["mainContact"], "Jane Doe")
        self.assertEqual(created["contactPhone"], "0933")
        self.assertEqual(self.store.dump("RawLeads")[2][10], "upgraded")

        contacts = [row for row in self.store.dump("Contacts").values() if row[2] == "Jane Doe"]
        self.assertEqual(contacts[0][1], "BC-2")
        interactions = list(self.store.dump("Interactions").values())
        self.assertEqual(len(interactions), 1)
        self.assertEqual(interactions[0][5], "Upgraded raw lead to opportunity")

    async def test_upgrade_unknown_row(self):
        with self.assertRaises(NotFoundError):
            await self.services.workflow_service.upgrade_contact_to_opportunity(40, {"opportunityName": "x"}, "bob")

    async def test_file_contact(self):
        result = await self.services.workflow_service.file_contact(2, "bob")
        self.assertTrue(result["data"]["company"]["created"])
        self.assertEqual(self.store.dump("RawLeads")[2][10], "filed")
        self.assertEqual(self.store.dump("Opportunities"), {})

        again = await self.services.workflow_service.file_contact(2, "bob")
        self.assertFalse(again["data"]["contact"]["created"])
        self.assertEqual(len(self.store.dump("Companies")), 1)

    async def test_link_business_card(self):
        result = await self.services.workflow_service.link_business_card_to_contact("CON1", 2, "bob")
        self.assertEqual(result["data"]["updatedFields"]["sourceId"], "BC-2")
        contact = self.store.dump("Contacts")[2]
        self.assertEqual(contact[1], "BC-2")
        self.assertEqual(contact[2], "Jane Doe")
        self.assertEqual(self.store.dump("RawLeads")[2][10], "linked")

    async def test_link_business_card_requires_manual_contact(self):
        with self.assertRaises(ValidationError):
            await self.services.workflow_service.link_business_card_to_contact("CON2", 2, "bob")


if __name__ == "__main__":
    unittest.main()
