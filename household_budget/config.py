"""Configuration settings for the household budget system."""
import os
from decimal import Decimal
from pathlib import Path
from typing import Dict

# Paths
DATA_DIR = Path(os.environ.get("HOUSEHOLD_BUDGET_DATA_DIR", Path.home() / ".household_budget"))
DB_PATH = DATA_DIR / "budget.db"

# Month partitioning
MONTH_FORMAT = "MM/YYYY"

# Savings
DEFAULT_SAVINGS_TARGET = Decimal("300")  # Fixed monthly savings before "remaining cash"

# Default seal-month allocation caps
HOUSE_ALLOCATION_CAP = Decimal("200")
TRAVEL_ALLOCATION_CAP = Decimal("100")

# Bank sync (SimpleFIN)
SYNC_LOOKBACK_DAYS = 90
SYNC_TIMEOUT_SECONDS = 300  # The aggregator is slow; allow a few minutes

# Manual entry
MANUAL_CONNECTION_ID = "manual"
MANUAL_CONNECTION_NAME = "Manual"

# Connections
ACCOUNT_TYPES = [
    "checking",
    "savings",
    "credit",
    "investment",
    "retirement",
]

# Funds without a settings row fall back to these positions
DEFAULT_FUND_POSITIONS: Dict[str, str] = {
    "fund-madison": "left",
    "fund-josh": "left",
    "fund-house": "right",
    "fund-travel": "right",
}
DEFAULT_FUND_POSITION = "right"
FUND_POSITIONS = ["left", "right"]

# App setting keys
SETTING_SIMPLEFIN_ACCESS_URL = "simplefin_access_url"
SETTING_SAVINGS_TARGET = "savings_target"


def ensure_data_dir() -> Path:
    """Ensure the data directory exists."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR
