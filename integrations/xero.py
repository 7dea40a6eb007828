"""
Xero Integration
=================

Revenue / expense figures for the financial scorecard metrics.

- Connection (tenant + tokens) stored in the xero_connection table
- Access token refreshed when it expires within 5 minutes; new tokens written back
- Invoices paged from the Accounting API: ACCREC -> revenue, ACCPAY -> expenses

The OAuth consent flow itself lives outside this service.

Setup:
    Set XERO_CLIENT_ID and XERO_CLIENT_SECRET in .env
"""

import os
import re
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import requests

from scripts.lib.capabilities import Capability, get_capabilities
from scripts.lib.circuit_breaker import CircuitBreaker
from scripts.lib.errors import NotConfiguredError, XeroAPIError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import safe_float, to_date

logger = setup_logger("xero_integration")

XERO_TOKEN_URL = "https://identity.xero.com/connect/token"
XERO_API_BASE = "https://api.xero.com/api.xro/2.0"
XERO_PAGE_SIZE = 100  # Accounting API page size
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)

COUNTED_STATUSES = {"PAID", "AUTHORISED"}

_refresh_lock = threading.Lock()

# Legacy JSON date: /Date(1518685950940+0000)/
_MS_DATE = re.compile(r"/Date\((\d+)([+-]\d{4})?\)/")


@dataclass
class XeroConnection:
    tenant_id: str
    access_token: str
    refresh_token: str
    token_expires_at: Optional[datetime] = None


@dataclass
class FinancialSummary:
    revenue: float
    expenses: float
    start: date
    end: date

    @property
    def profit(self) -> float:
        return self.revenue - self.expenses


def parse_xero_date(invoice: Dict) -> Optional[date]:
    """Invoice date from DateString, falling back to the legacy Date field."""
    raw = invoice.get("DateString") or invoice.get("Date")
    if not raw:
        return None
    match = _MS_DATE.match(str(raw))
    if match:
        return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc).date()
    return to_date(raw)


def _needs_refresh(connection: XeroConnection) -> bool:
    expires_at = connection.token_expires_at
    return expires_at is None or expires_at - datetime.now(timezone.utc) < TOKEN_REFRESH_MARGIN


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class XeroIntegration:
    """Xero Accounting API connector backed by the stored connection row."""

    def __init__(self, client=None, session: Optional[requests.Session] = None):
        self._client = client
        self.client_id = os.getenv("XERO_CLIENT_ID", "")
        self.client_secret = os.getenv("XERO_CLIENT_SECRET", "")
        self.session = session or requests.Session()
        self.breaker = CircuitBreaker.get("xero", failure_threshold=3, reset_timeout=120)

    @property
    def client(self):
        if self._client is None:
            from scripts.lib.supabase_client import get_client
            self._client = get_client()
        return self._client

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    # ─── Connection & tokens ─────────────────────────────────

    def get_connection(self) -> Optional[XeroConnection]:
        """Stored connection, or None when Xero has not been connected."""
        get_capabilities().require(Capability.XERO)
        result = self.client.table("xero_connection").select("*").limit(1).execute()
        if not result.data:
            return None
        row = result.data[0]
        return XeroConnection(
            tenant_id=row["tenant_id"],
            access_token=row.get("access_token") or "",
            refresh_token=row.get("refresh_token") or "",
            token_expires_at=_parse_timestamp(row.get("token_expires_at")),
        )

    def refresh_token(self, connection: XeroConnection) -> XeroConnection:
        """Exchange the refresh token and persist the rotated pair."""
        if not self.is_configured:
            raise NotConfiguredError("Xero client credentials not configured")

        resp = self.session.post(
            XERO_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": connection.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=30,
        )
        if resp.status_code != 200:
            raise XeroAPIError(
                f"Token refresh failed: {resp.status_code} {resp.text}",
                status_code=resp.status_code, url=XERO_TOKEN_URL,
            )

        tokens = resp.json()
        now = datetime.now(timezone.utc)
        refreshed = XeroConnection(
            tenant_id=connection.tenant_id,
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token", connection.refresh_token),
            token_expires_at=now + timedelta(seconds=int(tokens.get("expires_in", 1800))),
        )
        self.client.table("xero_connection").update({
            "access_token": refreshed.access_token,
            "refresh_token": refreshed.refresh_token,
            "token_expires_at": refreshed.token_expires_at.isoformat(),
            "updated_at": now.isoformat(),
        }).eq("tenant_id", connection.tenant_id).execute()
        logger.info("Xero token refreshed for tenant %s", connection.tenant_id)
        return refreshed

    def _connected(self) -> XeroConnection:
        connection = self.get_connection()
        if connection is None:
            raise NotConfiguredError("Xero not connected. Please connect in Settings")
        return connection

    def valid_connection(self) -> XeroConnection:
        """Stored connection with a usable access token.

        Xero rotates the refresh token on every exchange, so concurrent weeks of a
        scorecard run refresh one at a time and re-read the row under the lock.
        """
        connection = self._connected()
        if not _needs_refresh(connection):
            return connection
        with _refresh_lock:
            connection = self._connected()
            if _needs_refresh(connection):
                connection = self.refresh_token(connection)
        return connection

    # ─── Invoices ────────────────────────────────────────────

    def _get(self, connection: XeroConnection, endpoint: str, params: Dict) -> Dict:
        url = f"{XERO_API_BASE}/{endpoint}"
        resp = self.session.get(
            url,
            headers={
                "Authorization": f"Bearer {connection.access_token}",
                "Xero-Tenant-Id": connection.tenant_id,
                "Accept": "application/json",
            },
            params=params,
            timeout=30,
        )
        if resp.status_code != 200:
            raise XeroAPIError(
                f"Xero API error: {resp.status_code} {resp.text}",
                status_code=resp.status_code, url=url,
            )
        return resp.json()

    def list_invoices(self, connection: XeroConnection, invoice_type: str,
                      start: date, end: date) -> List[Dict]:
        """All invoices of a type dated within [start, end], following pages."""
        where = (
            f'Type=="{invoice_type}" AND '
            f"Date>=DateTime({start.year},{start.month},{start.day}) AND "
            f"Date<=DateTime({end.year},{end.month},{end.day})"
        )
        invoices: List[Dict] = []
        page = 1
        while True:
            data = self.breaker.call(
                self._get, connection, "Invoices", {"where": where, "page": page},
            )
            batch = data.get("Invoices") or []
            invoices.extend(batch)
            if len(batch) < XERO_PAGE_SIZE:
                break
            page += 1
        return invoices

    @staticmethod
    def sum_invoices(invoices: List[Dict], start: date, end: date) -> float:
        """Sum PAID/AUTHORISED invoices with a positive total dated within the range."""
        total = 0.0
        for invoice in invoices:
            invoice_date = parse_xero_date(invoice)
            if invoice_date is None or not (start <= invoice_date <= end):
                continue
            if str(invoice.get("Status", "")).upper() not in COUNTED_STATUSES:
                continue
            amount = safe_float(invoice.get("Total") or invoice.get("AmountDue"))
            if amount > 0:
                total += amount
        return total

    def fetch_financial_data(self, start: date, end: date) -> FinancialSummary:
        """
        Revenue and expenses for an inclusive date range.

        Raises:
            NotConfiguredError: Table missing or Xero not connected.
            XeroAPIError: Token refresh or API failure.
        """
        connection = self.valid_connection()
        revenue = self.sum_invoices(self.list_invoices(connection, "ACCREC", start, end), start, end)
        expenses = self.sum_invoices(self.list_invoices(connection, "ACCPAY", start, end), start, end)
        logger.info(
            "Xero %s..%s: revenue=%.2f expenses=%.2f", start, end, revenue, expenses,
        )
        return FinancialSummary(revenue=revenue, expenses=expenses, start=start, end=end)

    def get_status(self) -> Dict:
        return {
            "name": "Xero",
            "configured": self.is_configured,
            "circuit": self.breaker.status(),
        }
