import csv
import io
from datetime import date
from typing import List

from schemas import LedgerDay, LedgerTotals

HEADER = ["Date", "COD Received", "Orders", "Amount Paid", "Status"]


def ledger_csv(days: List[LedgerDay], totals: LedgerTotals, currency: str = "") -> str:
    """Ledger view as CSV text, one row per day plus a totals row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    suffix = f" ({currency})" if currency else ""
    writer.writerow([
        HEADER[0],
        HEADER[1] + suffix,
        HEADER[2],
        HEADER[3] + suffix,
        HEADER[4],
    ])
    for day in days:
        writer.writerow([
            day.date.isoformat(),
            f"{day.cod_received:.3f}",
            day.order_count,
            f"{day.amount_paid:.3f}",
            day.status.value,
        ])
    writer.writerow([
        "Total",
        f"{totals.cod_received:.3f}",
        totals.order_count,
        f"{totals.amount_paid:.3f}",
        f"Balance {totals.balance:.3f}",
    ])
    return buffer.getvalue()


def ledger_filename(driver: str, date_from: date, date_to: date) -> str:
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in str(driver)).strip("-") or "driver"
    return f"cod-ledger-{safe}-{date_from.isoformat()}-{date_to.isoformat()}.csv"
