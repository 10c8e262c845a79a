"""
Summary and Report Models

Totals are always computed from committed data. Loans are reported
but excluded from the balance: balance = collections - expenses.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, Field

from hms_finance.models.ledger import TransactionType


class FinancialSummary(BaseModel):
    """Totals per transaction type plus the resulting balance."""

    collections: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    loans: Decimal = Decimal("0")
    transaction_count: int = Field(default=0, ge=0)

    @property
    def balance(self) -> Decimal:
        return self.collections - self.expenses


class ActivityEntry(BaseModel):
    """A committed transaction annotated with the event it belongs to."""

    event_id: str
    event_name: str
    transaction_id: str
    name: str
    amount: Decimal
    type: TransactionType
    date: dt.date


class ReportRow(BaseModel):
    """
    One table row for a document exporter.

    Amount is pre-formatted; collection, expense and loan columns are
    mutually exclusive and the empty ones hold "-".
    """

    date: str
    name: str
    type: str
    amount: str
    collection: str = "-"
    expense: str = "-"
    loan: str = "-"
