"""
Scorecard data sources.

Thin readers the metric calculator pulls from:

    TimeTrackingSource   hours logged by all users in a date range
    LeadsSource          monday_projects rows with status "lead" + status allow/deny config
    FinancialSource      revenue / expenses from Xero for a date range
"""
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from integrations.xero import FinancialSummary, XeroIntegration
from models.monday_models import LeadsStatusConfig
from scripts.lib.capabilities import Capabilities, Capability, get_capabilities
from scripts.lib.logger import setup_logger
from scripts.lib.utils import safe_float

logger = setup_logger(__name__)

LEAD_FIELDS = "id, name, client_name, monday_status, quote_value, quoted_hours, due_date, created_at"


class TimeTrackingSource:
    def __init__(self, client):
        self.client = client

    def total_hours(self, start: date, end: date) -> float:
        result = (
            self.client.table("time_entries")
            .select("hours")
            .gte("date", start.isoformat())
            .lte("date", end.isoformat())
            .execute()
        )
        return sum(safe_float(row.get("hours")) for row in result.data or [])


class LeadsSource:
    def __init__(self, client, capabilities: Optional[Capabilities] = None):
        self.client = client
        self._capabilities = capabilities
        self._leads: Optional[List[Dict]] = None
        self._status_config: Optional[LeadsStatusConfig] = None

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities or get_capabilities()

    def leads(self) -> List[Dict]:
        """All lead rows, read once per source instance."""
        if self._leads is None:
            result = (
                self.client.table("monday_projects")
                .select(LEAD_FIELDS)
                .eq("status", "lead")
                .execute()
            )
            self._leads = result.data or []
        return self._leads

    def status_config(self) -> LeadsStatusConfig:
        """Admin-configured include/exclude lists; empty when not migrated."""
        if self._status_config is None:
            config = LeadsStatusConfig()
            if self.capabilities.has(Capability.LEADS_STATUS_CONFIG):
                result = (
                    self.client.table("leads_status_config")
                    .select("included_statuses, excluded_statuses")
                    .limit(1)
                    .execute()
                )
                if result.data:
                    row = result.data[0]
                    config = LeadsStatusConfig(
                        included_statuses=row.get("included_statuses") or [],
                        excluded_statuses=row.get("excluded_statuses") or [],
                    )
            self._status_config = config
        return self._status_config


class FinancialSource:
    def __init__(self, xero: Optional[XeroIntegration] = None, client=None):
        self.xero = xero or XeroIntegration(client=client)
        self._cache: Dict[tuple, FinancialSummary] = {}

    def summary(self, start: date, end: date) -> FinancialSummary:
        key = (start, end)
        if key not in self._cache:
            self._cache[key] = self.xero.fetch_financial_data(start, end)
        return self._cache[key]
