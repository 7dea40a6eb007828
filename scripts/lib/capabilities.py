"""
Schema capability check for Studio Ops Hub.

Optional features live in tables added by later migrations. Instead of
sniffing "relation does not exist" errors at every call site, the schema is
probed once at startup and the result is exposed as typed flags.

Usage:
    from scripts.lib.capabilities import Capability, detect_capabilities, get_capabilities

    caps = detect_capabilities(client)      # API lifespan / CLI start
    caps.require(Capability.SCORECARD)      # raises NotConfiguredError
    if caps.has(Capability.LEADS_BOARD): ...
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from scripts.lib.errors import NotConfiguredError
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import is_missing_table_error

logger = setup_logger(__name__)


class Capability(str, Enum):
    SCORECARD = "scorecard"
    XERO = "xero"
    SYNC_SETTINGS = "sync_settings"
    LEADS_STATUS_CONFIG = "leads_status_config"
    LEADS_BOARD = "leads_board"
    COMPLETED_BOARDS = "completed_boards"
    FLEXI_COMPLETED_BOARD = "flexi_completed_board"


# capability -> (probe table, migration that creates it)
CAPABILITY_TABLES: Dict[Capability, tuple] = {
    Capability.SCORECARD: ("scorecard_metrics", "029_add_scorecard_tables.sql"),
    Capability.XERO: ("xero_connection", "007_add_xero_integration.sql"),
    Capability.SYNC_SETTINGS: ("monday_sync_settings", "015_add_monday_sync_settings.sql"),
    Capability.LEADS_STATUS_CONFIG: ("leads_status_config", "021_add_status_column_and_config.sql"),
    Capability.LEADS_BOARD: ("monday_leads_board", "005_add_leads_board.sql"),
    Capability.COMPLETED_BOARDS: ("monday_completed_boards", "003_add_completed_boards.sql"),
    Capability.FLEXI_COMPLETED_BOARD: (
        "flexi_design_completed_board", "014_add_flexi_design_completed_board.sql",
    ),
}


@dataclass
class Capabilities:
    """Which optional tables exist in the connected database."""

    flags: Dict[Capability, bool] = field(default_factory=dict)

    def has(self, capability: Capability) -> bool:
        return self.flags.get(capability, False)

    def require(self, capability: Capability):
        if not self.has(capability):
            table, migration = CAPABILITY_TABLES[capability]
            raise NotConfiguredError(
                f"{table} table does not exist",
                migration=migration, feature=capability.value,
            )

    @classmethod
    def all_enabled(cls) -> "Capabilities":
        return cls({cap: True for cap in Capability})

    def as_dict(self) -> Dict[str, bool]:
        return {cap.value: self.has(cap) for cap in Capability}


_capabilities: Optional[Capabilities] = None


def detect_capabilities(client) -> Capabilities:
    """Probe each optional table once and cache the result."""
    global _capabilities

    flags: Dict[Capability, bool] = {}
    for capability, (table, migration) in CAPABILITY_TABLES.items():
        try:
            client.table(table).select("*").limit(1).execute()
            flags[capability] = True
        except Exception as e:
            if not is_missing_table_error(e):
                raise
            flags[capability] = False
            logger.warning(
                "Capability '%s' unavailable: %s missing (run %s)",
                capability.value, table, migration,
            )

    _capabilities = Capabilities(flags)
    logger.info("Schema capabilities: %s", _capabilities.as_dict())
    return _capabilities


def get_capabilities() -> Capabilities:
    """Cached capabilities; detects them on first use."""
    if _capabilities is None:
        from scripts.lib.supabase_client import get_client
        return detect_capabilities(get_client())
    return _capabilities


def set_capabilities(capabilities: Optional[Capabilities]):
    """Replace the cached capabilities (startup override, tests)."""
    global _capabilities
    _capabilities = capabilities
