"""Typed accessors over the app_settings key/value table."""
import logging
from decimal import Decimal
from typing import Any, Optional

from household_budget.config import (
    DEFAULT_SAVINGS_TARGET,
    SETTING_SAVINGS_TARGET,
    SETTING_SIMPLEFIN_ACCESS_URL,
)
from household_budget.db.sqlite_store import SQLiteStore, to_money
from household_budget.errors import ValidationError


logger = logging.getLogger(__name__)


class SettingsStore:
    """Known process-wide settings, one accessor per key."""

    def __init__(self, store: SQLiteStore):
        self.store = store

    @property
    def savings_target(self) -> Decimal:
        """Fixed monthly savings subtracted before remaining cash."""
        raw = self.store.get_app_setting(SETTING_SAVINGS_TARGET)
        if raw is None:
            return DEFAULT_SAVINGS_TARGET
        try:
            return to_money(raw)
        except ValidationError:
            logger.warning(f"Ignoring unparseable savings target {raw!r}")
            return DEFAULT_SAVINGS_TARGET

    def set_savings_target(self, value: Any) -> Decimal:
        amount = to_money(value)
        if amount < 0:
            raise ValidationError("Savings target cannot be negative")
        self.store.set_app_setting(SETTING_SAVINGS_TARGET, str(amount))
        return amount

    def reset_savings_target(self) -> None:
        self.store.delete_app_setting(SETTING_SAVINGS_TARGET)

    @property
    def simplefin_access_url(self) -> Optional[str]:
        return self.store.get_app_setting(SETTING_SIMPLEFIN_ACCESS_URL)

    def set_simplefin_access_url(self, access_url: str) -> None:
        self.store.set_app_setting(SETTING_SIMPLEFIN_ACCESS_URL, access_url)

    def clear_simplefin_access_url(self) -> bool:
        return self.store.delete_app_setting(SETTING_SIMPLEFIN_ACCESS_URL)
