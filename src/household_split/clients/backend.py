"""Household backend client (PostgREST-style REST API)."""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

import httpx

from ..exceptions import BackendAPIError
from ..models import Member, MemberBalance, MemberSplit, Transaction

logger = logging.getLogger(__name__)

SPLIT_COLUMNS = (
    "transaction_id,member_id,amount,percentage,"
    "owed_amount,owed_percentage,paid_amount,paid_percentage"
)

TRANSACTION_COLUMNS = (
    "id,date,description,amount,transaction_type,paid_by_member_id,"
    "paid_to_member_id,category_id,split_type,paid_by_type,"
    "reimburses_transaction_id"
)


def _decimal(value: Any, default: str = "0") -> Decimal:
    """Parse a JSON number or string into a Decimal without float artefacts."""
    if value is None:
        return Decimal(default)
    return Decimal(str(value))


class BackendClient:
    """Read-only client for the household backend's REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the backend client."""
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(
            base_url=f"{self.base_url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            timeout=30.0,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def _get(self, path: str, params: dict[str, str]) -> list[dict[str, Any]]:
        """GET a table or view and return its rows."""
        try:
            response = self.client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BackendAPIError(
                f"Backend request to {path} failed with status "
                f"{e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise BackendAPIError(f"Backend request to {path} failed: {e}") from e

        data: list[dict[str, Any]] = response.json()
        logger.debug(f"Fetched {len(data)} rows from {path}")
        return data

    def get_members(self, household_id: str) -> list[Member]:
        """
        Get the household roster, including inactive members.

        Pending members haven't joined yet and are left out.

        Args:
            household_id: The household ID

        Returns:
            List of members
        """
        rows = self._get(
            "/household_members",
            {
                "select": "id,display_name,status",
                "household_id": f"eq.{household_id}",
                "status": "in.(approved,inactive)",
                "order": "created_at.asc",
            },
        )
        return [
            Member(
                id=row["id"],
                display_name=row["display_name"],
                is_active=row.get("status", "approved") == "approved",
            )
            for row in rows
        ]

    def get_transactions(self, household_id: str) -> list[Transaction]:
        """
        Get every transaction for a household, newest first.

        Args:
            household_id: The household ID

        Returns:
            List of transactions
        """
        rows = self._get(
            "/transactions",
            {
                "select": TRANSACTION_COLUMNS,
                "household_id": f"eq.{household_id}",
                "order": "date.desc,created_at.desc",
            },
        )

        transactions = []
        for row in rows:
            transactions.append(
                Transaction(
                    id=row["id"],
                    transaction_type=row["transaction_type"],
                    amount=_decimal(row["amount"]),
                    date=date.fromisoformat(row["date"][:10]),
                    description=row.get("description") or "",
                    payer_id=row.get("paid_by_member_id"),
                    payee_id=row.get("paid_to_member_id"),
                    category_id=row.get("category_id"),
                    split_type=row.get("split_type") or "custom",
                    paid_by_type=row.get("paid_by_type") or "custom",
                    linked_expense_id=row.get("reimburses_transaction_id"),
                )
            )
        return transactions

    def get_splits(self, household_id: str) -> dict[str, list[MemberSplit]]:
        """
        Get every split row for a household, keyed by transaction id.

        Rows written before owed/paid columns existed only have `amount` and
        `percentage`; those are read as the owed side.

        Args:
            household_id: The household ID

        Returns:
            Split rows keyed by transaction id
        """
        rows = self._get(
            "/transaction_splits",
            {
                "select": f"{SPLIT_COLUMNS},transactions!inner(household_id)",
                "transactions.household_id": f"eq.{household_id}",
            },
        )

        splits: dict[str, list[MemberSplit]] = {}
        for row in rows:
            owed = row.get("owed_amount")
            owed_pct = row.get("owed_percentage")
            split = MemberSplit(
                transaction_id=row["transaction_id"],
                member_id=row["member_id"],
                owed_amount=_decimal(owed if owed is not None else row.get("amount")),
                owed_percentage=_decimal(
                    owed_pct if owed_pct is not None else row.get("percentage")
                ),
                paid_amount=_decimal(row.get("paid_amount")),
                paid_percentage=_decimal(row.get("paid_percentage")),
            )
            splits.setdefault(split.transaction_id or "", []).append(split)
        return splits

    def get_member_balances(self, household_id: str) -> list[MemberBalance]:
        """
        Get the backend's authoritative balances.

        Args:
            household_id: The household ID

        Returns:
            One balance per member
        """
        rows = self._get(
            "/member_balances",
            {
                "select": "member_id,display_name,total_paid,total_share,balance",
                "household_id": f"eq.{household_id}",
            },
        )
        return [
            MemberBalance(
                member_id=row["member_id"],
                display_name=row.get("display_name") or "",
                total_paid=_decimal(row.get("total_paid")),
                total_owed=_decimal(row.get("total_share")),
                net_balance=_decimal(row.get("balance")),
            )
            for row in rows
        ]
