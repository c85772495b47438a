"""SimpleFIN Bridge client for importing account balances and transactions."""
import base64
import binascii
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from household_budget.config import SYNC_TIMEOUT_SECONDS
from household_budget.errors import ExternalServiceError, ValidationError


logger = logging.getLogger(__name__)


@dataclass
class SimpleFinTransaction:
    id: str
    posted: int  # epoch seconds
    amount: str
    description: str
    pending: bool = False

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SimpleFinTransaction":
        return cls(
            id=str(data["id"]),
            posted=int(data.get("posted") or 0),
            amount=str(data.get("amount", "0")),
            description=data.get("description") or "",
            pending=bool(data.get("pending", False)),
        )


@dataclass
class SimpleFinAccount:
    id: str
    name: str
    balance: str
    currency: str = "USD"
    transactions: List[SimpleFinTransaction] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SimpleFinAccount":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            balance=str(data.get("balance", "0")),
            currency=data.get("currency") or "USD",
            transactions=[SimpleFinTransaction.from_json(t) for t in data.get("transactions") or []],
        )


@dataclass
class AccountSet:
    accounts: List[SimpleFinAccount] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "AccountSet":
        return cls(
            accounts=[SimpleFinAccount.from_json(a) for a in data.get("accounts") or []],
            errors=list(data.get("errors") or []),
        )


class SimpleFinClient:
    """Thin HTTP client for the SimpleFIN protocol.

    A one-time setup token (base64 of a claim URL) is exchanged for a durable
    access URL that embeds Basic-auth credentials.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = SYNC_TIMEOUT_SECONDS):
        self.session = session or requests.Session()
        self.timeout = timeout

    def claim_setup_token(self, setup_token: str) -> str:
        """Exchange a setup token for an access URL.

        Raises:
            ValidationError: if the token is not base64
            ExternalServiceError: if the claim request fails
        """
        try:
            claim_url = base64.b64decode(setup_token.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            raise ValidationError("Setup token is not valid base64")

        try:
            response = self.session.post(claim_url, headers={"Content-Length": "0"}, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError(f"Failed to claim token: {e}")

        if not response.ok:
            raise ExternalServiceError(f"Failed to claim token: {response.status_code} {response.reason}")

        logger.info("Claimed SimpleFIN setup token")
        return response.text.strip()

    def fetch_accounts(self, access_url: str, start_date: Optional[datetime] = None) -> AccountSet:
        """Fetch accounts with transactions posted since start_date.

        Raises:
            ExternalServiceError: on network failure or a non-2xx response
        """
        parts = urlsplit(access_url)
        netloc = parts.hostname or ""
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        base_url = urlunsplit((parts.scheme, netloc, parts.path.rstrip("/"), "", ""))
        auth = (parts.username or "", parts.password or "")

        params = {}
        if start_date:
            params["start-date"] = str(int(start_date.timestamp()))

        try:
            response = self.session.get(
                f"{base_url}/accounts",
                params=params,
                auth=auth,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"SimpleFin API error: {e}")

        if not response.ok:
            raise ExternalServiceError(f"SimpleFin API error: {response.status_code} {response.reason}")

        return AccountSet.from_json(response.json())
