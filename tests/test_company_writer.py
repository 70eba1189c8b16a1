import asyncio
import unittest

from crm_fixtures import company_row, make_services
from repository.company_writer import normalize_company_name
from services.errors import DuplicateError, NotFoundError, ValidationError


class NormalizeCompanyNameTests(unittest.TestCase):
    def test_case_and_whitespace(self):
        self.assertEqual(normalize_company_name("  ACME   Widgets "), "acme widgets")

    def test_strips_legal_suffixes(self):
        for raw in ("Acme Inc", "Acme Inc.", "Acme Co., Ltd.", "Acme Corporation", "Acme LLC", "Acme GmbH"):
            self.assertEqual(normalize_company_name(raw), "acme", raw)

    def test_strips_parenthetical_text(self):
        self.assertEqual(normalize_company_name("Acme (Taiwan Branch)"), "acme")
        self.assertEqual(normalize_company_name("Acme（台灣）"), "acme")

    def test_strips_cjk_suffix(self):
        self.assertEqual(normalize_company_name("大同股份有限公司"), "大同")

    def test_never_empties_a_name(self):
        self.assertEqual(normalize_company_name("Company"), "company")


class CompanyWriterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.services, self.store = make_services({"Companies": [company_row("COM1", "Acme Co., Ltd.")]})
        self.writer = self.services.company_writer

    async def test_existing_company_matched_by_normalized_name(self):
        result = await self.writer.get_or_create_company("ACME inc", {}, "alice")
        self.assertFalse(result["created"])
        self.assertEqual(result["id"], "COM1")
        self.assertEqual(len(self.store.dump("Companies")), 1)

    async def test_repeated_calls_create_one_row(self):
        first = await self.writer.get_or_create_company("Globex", {"phone": "555"}, "alice")
        second = await self.writer.get_or_create_company("globex ", {}, "bob")
        self.assertTrue(first["created"])
        self.assertFalse(second["created"])
        self.assertEqual(first["id"], second["id"])
        self.assertEqual(len(self.store.dump("Companies")), 2)

    async def test_concurrent_calls_create_one_row(self):
        results = await asyncio.gather(
            self.writer.get_or_create_company("Initech Ltd", {}, "alice"),
            self.writer.get_or_create_company("INITECH", {}, "bob"),
        )
        self.assertEqual(results[0]["id"], results[1]["id"])
        self.assertEqual(len(self.store.dump("Companies")), 2)

    async def test_created_row_carries_context(self):
        result = await self.writer.get_or_create_company(
            "Globex", {"phone": "555", "address": "Main St"}, "alice", {"county": "North", "customerStage": "lead"}
        )
        row = self.store.dump("Companies")[result["rowIndex"]]
        self.assertTrue(row[0].startswith("COM"))
        self.assertEqual(row[1:4], ["Globex", "555", "Main St"])
        self.assertEqual(row[6], "North")
        self.assertEqual(row[7], "alice")
        self.assertEqual(row[11], "lead")

    async def test_blank_name_rejected(self):
        with self.assertRaises(ValidationError):
            await self.writer.get_or_create_company("  ", {}, "alice")

    async def test_update_and_delete(self):
        result = await self.writer.update_company("acme co., ltd.", {"phone": "999"}, "bob")
        self.assertTrue(result["success"])
        self.assertEqual(self.store.dump("Companies")[2][2], "999")
        self.assertEqual(self.store.dump("Companies")[2][8], "bob")

        deleted = await self.writer.delete_company("Acme Co., Ltd.")
        self.assertTrue(deleted["success"])
        self.assertEqual(self.store.dump("Companies"), {})

    async def test_rename_onto_existing_company_rejected(self):
        await self.writer.get_or_create_company("Globex", {}, "alice")
        with self.assertRaises(DuplicateError):
            await self.writer.update_company("Acme Co., Ltd.", {"companyName": "GLOBEX Inc"}, "bob")
        self.assertEqual(self.store.dump("Companies")[2][1], "Acme Co., Ltd.")

    async def test_key_locks_released_after_use(self):
        await asyncio.gather(
            self.writer.get_or_create_company("Initech", {}, "alice"),
            self.writer.get_or_create_company("initech ltd", {}, "bob"),
            self.writer.get_or_create_company("Globex", {}, "carol"),
        )
        self.assertEqual(len(self.writer._key_locks), 0)

    async def test_update_unknown_company(self):
        with self.assertRaises(NotFoundError):
            await self.writer.update_company("Nobody", {"phone": "1"}, "bob")


if __name__ == "__main__":
    unittest.main()
