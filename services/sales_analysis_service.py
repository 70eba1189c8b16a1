from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from repository.base_writer import round_half_up
from repository.opportunity_reader import OpportunityReader
from repository.system_reader import SystemReader
from shared.config import CrmConfig
from utils.timefmt import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 365
TOP_DEALS_LIMIT = 20
UNCLASSIFIED_GROUP = "unclassified"
_DAY_SECONDS = 24 * 60 * 60


def numeric_value(raw: Any) -> Optional[float]:
    """Opportunity value stored as text, possibly with thousands separators."""
    text = str(raw or "0").replace(",", "").strip()
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value):
        return None
    return value


def sales_cycle_days(opportunity: Dict[str, Any]) -> Optional[int]:
    """Whole days between creation and expected close, rounded up; None when either date is unusable."""
    if not opportunity.get("createdTime") or not opportunity.get("expectedCloseDate"):
        return None
    created = parse_timestamp(opportunity["createdTime"])
    closed = parse_timestamp(opportunity["expectedCloseDate"])
    if created is None or closed is None:
        return None
    return math.ceil(abs((closed - created).total_seconds()) / _DAY_SECONDS)


def close_date(opportunity: Dict[str, Any]) -> Optional[datetime]:
    return parse_timestamp(opportunity.get("expectedCloseDate") or opportunity.get("lastUpdateTime"))


def resolve_window(start_iso: Optional[str], end_iso: Optional[str]) -> tuple:
    end = parse_timestamp(end_iso) if end_iso else None
    end = end or utc_now()
    start = parse_timestamp(start_iso) if start_iso else None
    start = start or end - timedelta(days=DEFAULT_WINDOW_DAYS)
    start = start.replace(hour=0, minute=0, second=0, microsecond=0)
    end = end.replace(hour=23, minute=59, second=59, microsecond=999000)
    return start, end


def month_keys(start: datetime, end: datetime) -> List[str]:
    """Every calendar month touched by the window, oldest first."""
    keys = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        keys.append(f"{year:04d}-{month:02d}")
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return keys


def _average(total: float, count: int) -> int:
    return round_half_up(total / count) if count else 0


class SalesAnalysisService:
    def __init__(self, config: CrmConfig, opportunity_reader: OpportunityReader, system_reader: SystemReader) -> None:
        self.config = config
        self.opportunity_reader = opportunity_reader
        self.system_reader = system_reader

    async def get_sales_analysis_data(
        self, start_iso: Optional[str] = None, end_iso: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Won-deal analytics. The overview, distributions and top deals cover all
        won opportunities; only the monthly trend is limited to the window.
        """
        start, end = resolve_window(start_iso, end_iso)
        logger.info("Computing sales analysis for %s - %s", start.isoformat(), end.isoformat())

        opportunities, system_config = await asyncio.gather(
            self.opportunity_reader.get_opportunities(),
            self.system_reader.get_system_config(),
        )

        won = [opp for opp in opportunities if opp["currentStage"] == self.config.won_stage]
        won_in_window = []
        for opp in won:
            closed = close_date(opp)
            if closed is not None and start <= closed <= end:
                won_in_window.append(opp)
        logger.info(
            "Found %s won opportunities (stage=%s), %s closed inside the window",
            len(won),
            self.config.won_stage,
            len(won_in_window),
        )

        total_value = 0.0
        cycle_total = 0
        cycle_count = 0
        for opp in won:
            value = numeric_value(opp["opportunityValue"])
            if value is not None:
                total_value += value
            cycle = sales_cycle_days(opp)
            if cycle is not None:
                cycle_total += cycle
                cycle_count += 1

        overview = {
            "totalWonValue": total_value,
            "totalWonDeals": len(won),
            "averageDealValue": total_value / len(won) if won else 0,
            "averageSalesCycleInDays": _average(cycle_total, cycle_count),
        }

        return {
            "overview": overview,
            "trendChartData": self._monthly_trend(won_in_window, start, end),
            "sourceAnalysis": self._analyze_by_group(won, "opportunitySource", self.config.source_category, system_config),
            "typeAnalysis": self._analyze_by_group(won, "opportunityType", self.config.opportunity_type_category, system_config),
            "assigneeAnalysis": self._analyze_by_group(won, "assignee", self.config.team_member_category, system_config),
            "topDeals": self._top_deals(won),
        }

    @staticmethod
    def _monthly_trend(won_in_window: List[Dict[str, Any]], start: datetime, end: datetime) -> List[Dict[str, Any]]:
        buckets: Dict[str, Dict[str, float]] = {
            key: {"value": 0, "count": 0, "cycleTotal": 0, "cycleCount": 0} for key in month_keys(start, end)
        }
        for opp in won_in_window:
            closed = close_date(opp)
            bucket = buckets.get(f"{closed.year:04d}-{closed.month:02d}")
            if bucket is None:
                continue
            value = numeric_value(opp["opportunityValue"])
            if value is not None:
                bucket["value"] += value
            bucket["count"] += 1
            cycle = sales_cycle_days(opp)
            if cycle is not None:
                bucket["cycleTotal"] += cycle
                bucket["cycleCount"] += 1

        return [
            {
                "month": key,
                "value": bucket["value"],
                "count": bucket["count"],
                "avgSalesCycle": _average(bucket["cycleTotal"], int(bucket["cycleCount"])),
            }
            for key, bucket in buckets.items()
        ]

    @staticmethod
    def _analyze_by_group(
        opportunities: List[Dict[str, Any]],
        field_name: str,
        category: str,
        system_config: Dict[str, List[Dict[str, Any]]],
    ) -> Dict[str, List[Dict[str, Any]]]:
        labels = {item["value"]: item["note"] for item in system_config.get(category, [])}
        groups: Dict[str, Dict[str, float]] = {}
        for opp in opportunities:
            key = opp[field_name] or UNCLASSIFIED_GROUP
            display = labels.get(key) or key
            group = groups.setdefault(display, {"value": 0, "count": 0})
            value = numeric_value(opp["opportunityValue"])
            if value is not None:
                group["value"] += value
            group["count"] += 1

        by_value = [{"name": name, "y": data["value"]} for name, data in groups.items()]
        by_count = [{"name": name, "y": data["count"]} for name, data in groups.items()]
        by_value.sort(key=lambda item: item["y"], reverse=True)
        by_count.sort(key=lambda item: item["y"], reverse=True)
        return {"chartDataValue": by_value, "chartDataCount": by_count}

    @staticmethod
    def _top_deals(won: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        deals = [
            {
                **opp,
                "numericValue": numeric_value(opp["opportunityValue"]) or 0,
                "wonDate": opp["expectedCloseDate"] or opp["lastUpdateTime"] or opp["createdTime"],
            }
            for opp in won
        ]
        deals.sort(key=lambda item: item["numericValue"], reverse=True)
        return deals[:TOP_DEALS_LIMIT]
