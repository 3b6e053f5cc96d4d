# Overview: Service-layer operations for gym invoices; platform fee scheduling and reporting.

"""
Gym Invoice Service

The platform charges a gym a fixed fee per month of service it sells.
A sale is billed for every calendar month between the sale date and the
latest access end date of its lines (both months included). A sale without
duration-bearing lines is billed for the current month only.

    sale Jan 20, 30-day pass x2 -> ends Mar 21 -> Jan, Feb, Mar

The legacy schedule billed one month more than that; it is still available
through GYM_INVOICE_INCLUDE_EXTRA_MONTH. Which of the two is the default is
pending product-owner sign-off; until then the inclusive count above is used.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import GymInvoice
from gympos.money import ZERO, to_money
from gympos.time_utils import add_months, count_months_between, utcnow


@dataclass
class GymInvoiceEntry:
    gym_id: int
    transaction_id: int | None
    fee: Decimal
    transaction_date: datetime
    month: int
    year: int


def schedule_gym_invoices(
    *,
    gym_id: int,
    transaction_id: int | None,
    now: datetime,
    end_dates,
    fee: Decimal,
    include_extra_month: bool = False,
) -> list[GymInvoiceEntry]:
    """
    Build one fee entry per billed month.

    end_dates are the access end dates of the sale's duration lines (may be
    empty). A zero fee schedules nothing.
    """
    fee = to_money(fee)
    if fee <= 0:
        return []

    longest = now
    for end_date in end_dates:
        if end_date is not None and end_date > longest:
            longest = end_date

    months = count_months_between(now, longest)
    if include_extra_month:
        months += 1

    entries = []
    for i in range(months):
        billed_at = add_months(now, i)
        entries.append(GymInvoiceEntry(
            gym_id=gym_id,
            transaction_id=transaction_id,
            fee=fee,
            transaction_date=billed_at,
            month=billed_at.month,
            year=billed_at.year,
        ))
    return entries


def append_gym_invoices(session, entries: list[GymInvoiceEntry]) -> list[GymInvoice]:
    """Insert scheduled entries; the caller owns the transaction."""
    rows = [
        GymInvoice(
            gym_id=e.gym_id,
            transaction_id=e.transaction_id,
            fee=e.fee,
            transaction_date=e.transaction_date,
            month=e.month,
            year=e.year,
        )
        for e in entries
    ]
    session.add_all(rows)
    session.flush()
    return rows


def _resolve_period(month: int | None, year: int | None) -> tuple[int, int]:
    now = utcnow()
    month = month or now.month
    year = year or now.year
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    return month, year


def list_gym_invoices(gym_id: int, month: int | None = None, year: int | None = None) -> dict:
    """Invoice lines of one billing period (defaults to the current month)."""
    month, year = _resolve_period(month, year)

    rows = (
        db.session.query(GymInvoice)
        .filter_by(gym_id=gym_id, month=month, year=year)
        .order_by(GymInvoice.transaction_date.asc(), GymInvoice.id.asc())
        .all()
    )
    total_fee = sum((to_money(r.fee) for r in rows), ZERO)

    return {
        "gym_id": gym_id,
        "month": month,
        "year": year,
        "invoices": [r.to_dict() for r in rows],
        "total_transactions": len(rows),
        "total_fee": str(total_fee),
    }


def get_yearly_summary(gym_id: int, year: int | None = None) -> dict:
    """Fee totals per month of a year; months without invoices are reported as zero."""
    year = year or utcnow().year

    totals = {
        month: (count, fee_sum)
        for month, count, fee_sum in (
            db.session.query(GymInvoice.month, func.count(GymInvoice.id), func.sum(GymInvoice.fee))
            .filter(GymInvoice.gym_id == gym_id, GymInvoice.year == year)
            .group_by(GymInvoice.month)
            .all()
        )
    }

    months = []
    grand_total = ZERO
    for month in range(1, 13):
        count, fee_sum = totals.get(month, (0, None))
        fee_total = to_money(fee_sum or 0)
        grand_total += fee_total
        months.append({"month": month, "total_transactions": count, "total_fee": str(fee_total)})

    return {"gym_id": gym_id, "year": year, "months": months, "total_fee": str(grand_total)}
