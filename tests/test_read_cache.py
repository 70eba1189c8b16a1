import asyncio
import unittest

from crm_fixtures import company_row, interaction_row, make_services
from repository.base_reader import paginate
from repository.company_reader import CACHE_KEY
from services.errors import StoreError


class ReadCacheTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.services, self.store = make_services(
            {
                "Companies": [company_row("COM1", "Acme"), company_row("COM2", "Globex")],
                "Interactions": [interaction_row("INT1", company_id="COM1")],
            },
            read_delay=0.01,
        )

    async def test_concurrent_readers_share_one_fetch(self):
        results = await asyncio.gather(*(self.services.company_reader.get_company_list() for _ in range(10)))
        self.assertEqual(self.store.reads["Companies"], 1)
        self.assertTrue(all(len(rows) == 2 for rows in results))

    async def test_cache_hit_until_invalidated(self):
        await self.services.company_reader.get_company_list()
        await self.services.company_reader.get_company_list()
        self.assertEqual(self.store.reads["Companies"], 1)

        self.services.company_reader.invalidate_cache(CACHE_KEY)
        await self.services.company_reader.get_company_list()
        self.assertEqual(self.store.reads["Companies"], 2)

    async def test_fetch_started_before_invalidation_is_not_cached(self):
        pending = asyncio.ensure_future(self.services.company_reader.get_company_list())
        await asyncio.sleep(0)
        self.services.company_reader.invalidate_cache(CACHE_KEY)
        rows = await pending
        self.assertEqual(len(rows), 2)
        self.assertIsNone(self.services.cache.get(CACHE_KEY))

    async def test_callers_get_independent_lists(self):
        first = await self.services.company_reader.get_company_list()
        first.clear()
        second = await self.services.company_reader.get_company_list()
        self.assertEqual(len(second), 2)

    async def test_failed_write_keeps_cache(self):
        await self.services.interaction_reader.get_interactions()
        self.store.failing_sheets.add("Interactions")
        with self.assertRaises(StoreError):
            await self.services.interaction_writer.create_interaction({"companyId": "COM1", "eventTitle": "x"})
        await self.services.interaction_reader.get_interactions()
        self.assertEqual(self.store.reads["Interactions"], 1)

    async def test_missing_trailing_columns_read_as_empty(self):
        self.services, self.store = make_services({"Companies": [["COM9", "Short"]]})
        rows = await self.services.company_reader.get_company_list()
        self.assertEqual(rows[0]["companyName"], "Short")
        self.assertEqual(rows[0]["engagementRating"], "")


class PaginateTests(unittest.TestCase):
    def setUp(self):
        self.items = [{"n": i} for i in range(7)]

    def test_page_zero_returns_everything(self):
        self.assertEqual(paginate(self.items, 0, 3), self.items)

    def test_second_page(self):
        result = paginate(self.items, 2, 3)
        self.assertEqual([item["n"] for item in result["data"]], [3, 4, 5])
        self.assertTrue(result["pagination"]["hasPrev"])
        self.assertTrue(result["pagination"]["hasNext"])
        self.assertEqual(result["pagination"]["total"], 3)
        self.assertEqual(result["pagination"]["totalItems"], 7)

    def test_last_page_has_no_next(self):
        result = paginate(self.items, 3, 3)
        self.assertEqual([item["n"] for item in result["data"]], [6])
        self.assertFalse(result["pagination"]["hasNext"])


if __name__ == "__main__":
    unittest.main()
