import unittest

from crm_fixtures import config_row, make_services, opportunity_row
from services.sales_analysis_service import month_keys, resolve_window, sales_cycle_days


class SalesCycleTests(unittest.TestCase):
    def test_ten_day_cycle(self):
        opp = {"createdTime": "2024-01-01T00:00:00.000Z", "expectedCloseDate": "2024-01-11"}
        self.assertEqual(sales_cycle_days(opp), 10)

    def test_partial_day_rounds_up(self):
        opp = {"createdTime": "2024-01-01T12:00:00.000Z", "expectedCloseDate": "2024-01-03"}
        self.assertEqual(sales_cycle_days(opp), 2)

    def test_unparseable_dates_are_skipped(self):
        self.assertIsNone(sales_cycle_days({"createdTime": "soon", "expectedCloseDate": "2024-01-03"}))
        self.assertIsNone(sales_cycle_days({"createdTime": "2024-01-01", "expectedCloseDate": ""}))

    def test_window_snaps_to_whole_days(self):
        start, end = resolve_window("2024-01-15T10:30:00Z", "2024-03-10T08:00:00Z")
        self.assertEqual((start.hour, start.minute, start.second), (0, 0, 0))
        self.assertEqual((end.hour, end.minute, end.second, end.microsecond), (23, 59, 59, 999000))

    def test_default_window_is_a_year(self):
        start, end = resolve_window(None, None)
        self.assertGreaterEqual((end - start).days, 365)
        self.assertLessEqual(len(month_keys(start, end)), 13)


class SalesAnalysisTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.services, _ = make_services(
            {
                "Opportunities": [
                    opportunity_row(
                        "OPP1",
                        "Jan deal",
                        "Acme",
                        currentStage="won",
                        createdTime="2024-01-01T00:00:00.000Z",
                        expectedCloseDate="2024-01-11",
                        opportunityValue="1,000",
                        opportunitySource="web",
                        assignee="alice",
                    ),
                    opportunity_row(
                        "OPP2",
                        "Mar deal",
                        "Globex",
                        currentStage="won",
                        createdTime="2024-02-01T00:00:00.000Z",
                        expectedCloseDate="2024-03-02",
                        opportunityValue="3000",
                        assignee="bob",
                    ),
                    opportunity_row(
                        "OPP3",
                        "Last year",
                        "Initech",
                        currentStage="won",
                        createdTime="2022-01-01T00:00:00.000Z",
                        expectedCloseDate="2022-06-01",
                        opportunityValue="500",
                        opportunitySource="web",
                    ),
                    opportunity_row("OPP4", "Open", "Acme", currentStage="lead", opportunityValue="9000"),
                ],
                "SystemConfig": [config_row("opportunity_source", "web", "Website")],
            }
        )

    async def test_overview_covers_every_won_deal(self):
        data = await self.services.sales_analysis_service.get_sales_analysis_data("2024-01-01", "2024-03-31")
        overview = data["overview"]
        self.assertEqual(overview["totalWonDeals"], 3)
        self.assertEqual(overview["totalWonValue"], 4500)
        self.assertEqual(overview["averageDealValue"], 1500)

    async def test_trend_has_a_bucket_for_every_month(self):
        data = await self.services.sales_analysis_service.get_sales_analysis_data("2024-01-01", "2024-03-31")
        trend = data["trendChartData"]
        self.assertEqual([bucket["month"] for bucket in trend], ["2024-01", "2024-02", "2024-03"])
        self.assertEqual(trend[0], {"month": "2024-01", "value": 1000, "count": 1, "avgSalesCycle": 10})
        self.assertEqual(trend[1], {"month": "2024-02", "value": 0, "count": 0, "avgSalesCycle": 0})
        self.assertEqual(trend[2]["count"], 1)
        self.assertEqual(trend[2]["avgSalesCycle"], 30)

    async def test_distributions_use_labels(self):
        data = await self.services.sales_analysis_service.get_sales_analysis_data("2024-01-01", "2024-03-31")
        by_value = data["sourceAnalysis"]["chartDataValue"]
        self.assertEqual(by_value[0], {"name": "unclassified", "y": 3000})
        self.assertEqual(by_value[1], {"name": "Website", "y": 1500})
        by_count = {item["name"]: item["y"] for item in data["assigneeAnalysis"]["chartDataCount"]}
        self.assertEqual(by_count, {"alice": 1, "bob": 1, "unclassified": 1})

    async def test_top_deals_ranked_by_value(self):
        data = await self.services.sales_analysis_service.get_sales_analysis_data("2024-01-01", "2024-03-31")
        top = data["topDeals"]
        self.assertEqual([deal["opportunityId"] for deal in top], ["OPP2", "OPP1", "OPP3"])
        self.assertEqual(top[1]["numericValue"], 1000)
        self.assertEqual(top[1]["wonDate"], "2024-01-11")


if __name__ == "__main__":
    unittest.main()
