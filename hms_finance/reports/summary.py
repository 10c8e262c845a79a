"""
Financial Summaries

Read-only aggregation over committed transactions for dashboards and
document exporters.

DESIGN DECISION: Totals reflect committed data only. When handed merged
rows, pending additions are skipped (unless explicitly requested) and
rows with a pending update still count at their committed values.
Loans are reported separately and never affect the balance.
"""

from decimal import Decimal
from typing import Iterable, Union

from hms_finance.models.ledger import Event, Transaction, TransactionType
from hms_finance.models.overlay import DisplayTransaction, PendingAction
from hms_finance.models.report import ActivityEntry, FinancialSummary, ReportRow


def _counts(row: Transaction, include_pending_adds: bool) -> bool:
    if isinstance(row, DisplayTransaction) and row.pending_action == PendingAction.ADD:
        return include_pending_adds
    return True


def summarize(
    transactions: Iterable[Union[Transaction, DisplayTransaction]],
    include_pending_adds: bool = False,
) -> FinancialSummary:
    """
    Total collections, expenses and loans.

    Args:
        transactions: Committed transactions or merged display rows
        include_pending_adds: Count synthetic rows for pending additions

    Returns:
        FinancialSummary; ``balance`` is collections minus expenses
    """
    totals = {t: Decimal("0") for t in TransactionType}
    count = 0

    for row in transactions:
        if not _counts(row, include_pending_adds):
            continue
        totals[row.type] += row.amount
        count += 1

    return FinancialSummary(
        collections=totals[TransactionType.COLLECTION],
        expenses=totals[TransactionType.EXPENSE],
        loans=totals[TransactionType.LOAN],
        transaction_count=count,
    )


def summarize_events(events: Iterable[Event]) -> FinancialSummary:
    """Totals across every given event (dashboard header)."""
    return summarize(t for event in events for t in event.transactions)


def recent_activity(events: Iterable[Event], limit: int = 7) -> list[ActivityEntry]:
    """Most recent committed transactions across events, newest date first."""
    entries = [
        ActivityEntry(
            event_id=event.id,
            event_name=event.name,
            transaction_id=t.id,
            name=t.name,
            amount=t.amount,
            type=t.type,
            date=t.date,
        )
        for event in events
        for t in event.transactions
    ]
    entries.sort(key=lambda e: e.date, reverse=True)
    return entries[:limit]


def format_amount(amount: Decimal) -> str:
    """Thousands-separated amount; fractional digits only when present."""
    if amount == amount.to_integral_value():
        return f"{amount:,.0f}"
    return f"{amount:,.2f}"


def report_rows(
    transactions: Iterable[Union[Transaction, DisplayTransaction]],
) -> list[ReportRow]:
    """
    Table rows for a printable report, oldest first.

    Pending additions are never exported.
    """
    rows = [t for t in transactions if _counts(t, include_pending_adds=False)]
    rows.sort(key=lambda t: t.date)

    result = []
    for t in rows:
        amount = format_amount(t.amount)
        result.append(ReportRow(
            date=t.date.isoformat(),
            name=t.name,
            type=t.type.value,
            amount=amount,
            collection=amount if t.type == TransactionType.COLLECTION else "-",
            expense=amount if t.type == TransactionType.EXPENSE else "-",
            loan=amount if t.type == TransactionType.LOAN else "-",
        ))
    return result
