"""
Metric Calculation Engine
==========================

Computes one automated metric for one Monday..Sunday week.

    time_tracking   sum of hours logged by all users in the week
    leads           count (or sum of a field) over leads created/due in the week,
                    narrowed by sub-type and status allow/deny lists
    financial       quarter-aligned Xero ratios and the 3-month lead pipeline
    capacity        not implemented: None
    anything else   None

``None`` means "no data, write nothing". Any exception raised while
calculating a metric becomes ``value=None`` plus an error message so the rest
of the batch keeps going.

automation_config keys:
    leads:      type (new_connections | intro_calls | quotes_submitted | inbound | all),
                date_field (created_at | due_date), included_statuses, excluded_statuses,
                aggregate (count | sum), field (quote_value | quoted_hours)
    financial:  type (quarterly_target_billed | profit_percentage | pipeline_value)
"""
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from models.scorecard_models import AutomationSource, CalculationResult, Metric
from scripts.lib.logger import setup_logger
from scripts.lib.utils import add_months, quarter_bounds, safe_float, to_date, week_bounds
from scripts.scorecard.sources import FinancialSource, LeadsSource, TimeTrackingSource

logger = setup_logger(__name__)

DEFAULT_QUARTERLY_TARGET = 130000.0
PIPELINE_MONTHS = 3
NO_CALL_STATUSES = {"new", "stuck", "blocked"}
SUMMABLE_LEAD_FIELDS = {"quote_value", "quoted_hours"}


def _normalise(statuses) -> set:
    return {str(s).strip().lower() for s in statuses or [] if str(s).strip()}


class MetricCalculator:
    """Dispatches on a metric's automation source."""

    def __init__(self, time_tracking: TimeTrackingSource, leads: LeadsSource,
                 financial: FinancialSource):
        self.time_tracking = time_tracking
        self.leads = leads
        self.financial = financial
        self._handlers = {
            AutomationSource.TIME_TRACKING: self._time_tracking,
            AutomationSource.LEADS: self._leads,
            AutomationSource.FINANCIAL: self._financial,
            AutomationSource.CAPACITY: lambda metric, start, end: None,
        }

    @classmethod
    def for_client(cls, client, capabilities=None, xero=None) -> "MetricCalculator":
        return cls(
            TimeTrackingSource(client),
            LeadsSource(client, capabilities),
            FinancialSource(xero=xero, client=client),
        )

    def calculate(self, metric: Metric, week_start) -> CalculationResult:
        start, end = week_bounds(week_start)
        handler = self._handlers.get(metric.source)
        if handler is None:
            return CalculationResult(metric_id=metric.id, value=None)
        try:
            value = handler(metric, start, end)
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            logger.warning("Metric '%s' (%s) failed for week %s: %s", metric.name, metric.id, start, message)
            return CalculationResult(metric_id=metric.id, value=None, error=f"{metric.name}: {message}")
        return CalculationResult(metric_id=metric.id, value=value)

    # ─── time_tracking ──────────────────────────────────────

    def _time_tracking(self, metric: Metric, start: date, end: date) -> float:
        return self.time_tracking.total_hours(start, end)

    # ─── leads ──────────────────────────────────────────────

    def _status_filter(self, metric: Metric):
        config = metric.automation_config
        if "included_statuses" in config or "excluded_statuses" in config:
            return _normalise(config.get("included_statuses")), _normalise(config.get("excluded_statuses"))
        stored = self.leads.status_config()
        return _normalise(stored.included_statuses), _normalise(stored.excluded_statuses)

    def matching_leads(self, metric: Metric, start: date, end: date) -> List[Dict]:
        config = metric.automation_config
        date_field = config.get("date_field", "created_at")
        included, excluded = self._status_filter(metric)

        matched = []
        for lead in self.leads.leads():
            lead_date = to_date(lead.get(date_field))
            if lead_date is None or not (start <= lead_date <= end):
                continue
            status = (lead.get("monday_status") or "").strip().lower()
            if included and status not in included:
                continue
            if excluded and status in excluded:
                continue
            matched.append(lead)

        lead_type = config.get("type", "all")
        if lead_type == "intro_calls":
            matched = [
                l for l in matched
                if l.get("monday_status") and l["monday_status"].strip().lower() not in NO_CALL_STATUSES
            ]
        elif lead_type == "quotes_submitted":
            matched = [l for l in matched if safe_float(l.get("quote_value")) > 0]
        return matched

    def _leads(self, metric: Metric, start: date, end: date) -> float:
        matched = self.matching_leads(metric, start, end)
        config = metric.automation_config
        if config.get("aggregate") == "sum":
            field = config.get("field", "quote_value")
            if field not in SUMMABLE_LEAD_FIELDS:
                raise ValueError(f"Cannot sum lead field '{field}'")
            return sum(safe_float(l.get(field)) for l in matched)
        return float(len(matched))

    # ─── financial ──────────────────────────────────────────

    def _financial(self, metric: Metric, start: date, end: date) -> Optional[float]:
        financial_type = metric.automation_config.get("type")

        if financial_type == "quarterly_target_billed":
            q_start, q_end = quarter_bounds(start)
            revenue = self.financial.summary(q_start, q_end).revenue
            if not revenue:
                return None
            target = metric.target_value or DEFAULT_QUARTERLY_TARGET
            return revenue / target * 100

        if financial_type == "profit_percentage":
            q_start, _ = quarter_bounds(start)
            summary = self.financial.summary(q_start, end)
            if not summary.revenue:
                return None
            return summary.profit / summary.revenue * 100

        if financial_type == "pipeline_value":
            horizon = add_months(start, PIPELINE_MONTHS)
            total = 0.0
            for lead in self.leads.leads():
                due = to_date(lead.get("due_date"))
                if due is not None and start <= due <= horizon:
                    total += safe_float(lead.get("quote_value"))
            return total

        return None
