"""Import balances and posted transactions from SimpleFIN into the store."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from household_budget.config import SYNC_LOOKBACK_DAYS
from household_budget.core.settings import SettingsStore
from household_budget.db.sqlite_store import SQLiteStore
from household_budget.errors import ValidationError
from household_budget.ingestion.simplefin import SimpleFinClient


logger = logging.getLogger(__name__)


def posted_date(epoch_seconds: int) -> str:
    """ISO date (UTC) of a SimpleFIN posted timestamp."""
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).date().isoformat()


class BankSync:
    """Pull accounts from the bank aggregator and record new transactions.

    Re-running a sync is safe: transaction ids are derived from the bank's
    account and transaction ids, so already-imported rows are skipped.
    """

    def __init__(
        self,
        store: SQLiteStore,
        client: Optional[SimpleFinClient] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.settings = SettingsStore(store)
        self.client = client or SimpleFinClient()
        self.clock = clock or datetime.now

    def sync(self) -> Dict[str, Any]:
        """Fetch the last SYNC_LOOKBACK_DAYS of activity.

        Returns:
            Dict with accounts seen, transactions inserted and bank errors

        Raises:
            ValidationError: if no access URL has been stored
            ExternalServiceError: if the bank request fails
        """
        access_url = self.settings.simplefin_access_url
        if not access_url:
            raise ValidationError("SimpleFin not connected")

        now = self.clock()
        data = self.client.fetch_accounts(access_url, now - timedelta(days=SYNC_LOOKBACK_DAYS))

        account_count = 0
        transaction_count = 0
        with self.store.transaction():
            for account in data.accounts:
                created = self.store.upsert_connection(account.id, account.name, account.balance, synced_at=now)
                if created:
                    logger.info(f"New connection from sync: {account.name}")
                account_count += 1

                for txn in account.transactions:
                    if txn.pending:
                        continue
                    inserted = self.store.add_transaction_if_absent(
                        txn_id=f"{account.id}-{txn.id}",
                        connection_id=account.id,
                        date=posted_date(txn.posted),
                        name=txn.description,
                        amount=txn.amount,
                    )
                    if inserted:
                        transaction_count += 1

        if data.errors:
            logger.warning(f"SimpleFIN reported errors: {data.errors}")
        logger.info(f"Synced {account_count} accounts, {transaction_count} new transactions")

        return {
            "accounts": account_count,
            "transactions": transaction_count,
            "errors": data.errors,
        }
