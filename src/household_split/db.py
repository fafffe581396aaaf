"""SQLite ledger store for household-split.

Amounts are stored as TEXT so Decimals round-trip exactly.
"""

import sqlite3
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from pathlib import Path

from .models import Member, MemberSplit, Transaction


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Household members table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        # Transactions table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS transactions (
                id TEXT PRIMARY KEY,
                transaction_type TEXT NOT NULL,
                amount TEXT NOT NULL,
                date DATE NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                payer_id TEXT REFERENCES members(id),
                payee_id TEXT REFERENCES members(id),
                category_id TEXT,
                split_type TEXT NOT NULL DEFAULT 'custom',
                paid_by_type TEXT NOT NULL DEFAULT 'custom',
                linked_expense_id TEXT REFERENCES transactions(id),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        # Per-member split rows (expenses only)
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS transaction_splits (
                transaction_id TEXT NOT NULL
                    REFERENCES transactions(id) ON DELETE CASCADE,
                member_id TEXT NOT NULL REFERENCES members(id),
                owed_amount TEXT NOT NULL,
                owed_percentage TEXT NOT NULL,
                paid_amount TEXT NOT NULL,
                paid_percentage TEXT NOT NULL,
                PRIMARY KEY (transaction_id, member_id)
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Member operations
    # ========================================================================

    def save_member(self, member: Member):
        """Insert or update a member."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO members (id, display_name, is_active)
            VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                display_name = excluded.display_name,
                is_active = excluded.is_active
            """,
            (member.id, member.display_name, int(member.is_active)),
        )
        self.conn.commit()

    def get_members(self, include_inactive: bool = True) -> list[Member]:
        """Get household members in the order they were added."""
        cursor = self.conn.cursor()
        query = "SELECT id, display_name, is_active FROM members"
        if not include_inactive:
            query += " WHERE is_active = 1"
        query += " ORDER BY created_at, rowid"
        cursor.execute(query)
        return [self._row_to_member(row) for row in cursor.fetchall()]

    def get_member(self, member_id: str) -> Member | None:
        """Get a member by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT id, display_name, is_active FROM members WHERE id = ?",
            (member_id,),
        )
        row = cursor.fetchone()
        return self._row_to_member(row) if row else None

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> Member:
        return Member(
            id=row["id"],
            display_name=row["display_name"],
            is_active=bool(row["is_active"]),
        )

    # ========================================================================
    # Transaction operations
    # ========================================================================

    def save_transaction(
        self, transaction: Transaction, splits: Sequence[MemberSplit] = ()
    ):
        """
        Insert or replace a transaction together with its split rows.

        Existing split rows for the transaction are replaced.
        """
        cursor = self.conn.cursor()
        with self.conn:
            cursor.execute(
                """
                INSERT INTO transactions (
                    id, transaction_type, amount, date, description, payer_id,
                    payee_id, category_id, split_type, paid_by_type,
                    linked_expense_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    transaction_type = excluded.transaction_type,
                    amount = excluded.amount,
                    date = excluded.date,
                    description = excluded.description,
                    payer_id = excluded.payer_id,
                    payee_id = excluded.payee_id,
                    category_id = excluded.category_id,
                    split_type = excluded.split_type,
                    paid_by_type = excluded.paid_by_type,
                    linked_expense_id = excluded.linked_expense_id
                """,
                (
                    transaction.id,
                    transaction.transaction_type,
                    str(transaction.amount),
                    transaction.date.isoformat(),
                    transaction.description,
                    transaction.payer_id,
                    transaction.payee_id,
                    transaction.category_id,
                    transaction.split_type,
                    transaction.paid_by_type,
                    transaction.linked_expense_id,
                ),
            )
            cursor.execute(
                "DELETE FROM transaction_splits WHERE transaction_id = ?",
                (transaction.id,),
            )
            cursor.executemany(
                """
                INSERT INTO transaction_splits (
                    transaction_id, member_id, owed_amount, owed_percentage,
                    paid_amount, paid_percentage
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        transaction.id,
                        split.member_id,
                        str(split.owed_amount),
                        str(split.owed_percentage),
                        str(split.paid_amount),
                        str(split.paid_percentage),
                    )
                    for split in splits
                ],
            )

    def delete_transaction(self, transaction_id: str) -> bool:
        """Delete a transaction (and its splits). Returns False if not found."""
        cursor = self.conn.cursor()
        with self.conn:
            cursor.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
        return cursor.rowcount > 0

    def get_transactions(self) -> list[Transaction]:
        """Get all transactions, newest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, transaction_type, amount, date, description, payer_id,
                   payee_id, category_id, split_type, paid_by_type,
                   linked_expense_id
            FROM transactions
            ORDER BY date DESC, created_at DESC, rowid DESC
            """
        )
        return [self._row_to_transaction(row) for row in cursor.fetchall()]

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        """Get a transaction by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, transaction_type, amount, date, description, payer_id,
                   payee_id, category_id, split_type, paid_by_type,
                   linked_expense_id
            FROM transactions
            WHERE id = ?
            """,
            (transaction_id,),
        )
        row = cursor.fetchone()
        return self._row_to_transaction(row) if row else None

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"],
            transaction_type=row["transaction_type"],
            amount=Decimal(row["amount"]),
            date=date.fromisoformat(row["date"]),
            description=row["description"],
            payer_id=row["payer_id"],
            payee_id=row["payee_id"],
            category_id=row["category_id"],
            split_type=row["split_type"],
            paid_by_type=row["paid_by_type"],
            linked_expense_id=row["linked_expense_id"],
        )

    # ========================================================================
    # Split operations
    # ========================================================================

    def get_splits(self, transaction_id: str) -> list[MemberSplit]:
        """Get the split rows for one transaction."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT transaction_id, member_id, owed_amount, owed_percentage,
                   paid_amount, paid_percentage
            FROM transaction_splits
            WHERE transaction_id = ?
            ORDER BY rowid
            """,
            (transaction_id,),
        )
        return [self._row_to_split(row) for row in cursor.fetchall()]

    def get_all_splits(self) -> dict[str, list[MemberSplit]]:
        """Get every split row, keyed by transaction id."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT transaction_id, member_id, owed_amount, owed_percentage,
                   paid_amount, paid_percentage
            FROM transaction_splits
            ORDER BY rowid
            """
        )
        splits: dict[str, list[MemberSplit]] = {}
        for row in cursor.fetchall():
            splits.setdefault(row["transaction_id"], []).append(
                self._row_to_split(row)
            )
        return splits

    @staticmethod
    def _row_to_split(row: sqlite3.Row) -> MemberSplit:
        return MemberSplit(
            transaction_id=row["transaction_id"],
            member_id=row["member_id"],
            owed_amount=Decimal(row["owed_amount"]),
            owed_percentage=Decimal(row["owed_percentage"]),
            paid_amount=Decimal(row["paid_amount"]),
            paid_percentage=Decimal(row["paid_percentage"]),
        )
