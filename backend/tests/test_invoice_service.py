# Overview: Pytest coverage for gym invoice scheduling and reporting.

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from gympos.services import invoice_service
from gympos.services.invoice_service import append_gym_invoices, schedule_gym_invoices
from gympos.time_utils import add_months, count_months_between


FEE = Decimal("5000")


def _months(entries):
    return [(e.year, e.month) for e in entries]


class TestMonthMath:

    def test_same_month_counts_once(self):
        assert count_months_between(datetime(2026, 1, 1), datetime(2026, 1, 31)) == 1

    def test_inclusive_count(self):
        assert count_months_between(datetime(2026, 1, 20), datetime(2026, 3, 21)) == 3

    def test_across_year_end(self):
        assert count_months_between(datetime(2025, 11, 15), datetime(2026, 2, 1)) == 4

    def test_add_months_clamps_day(self):
        assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
        assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)

    def test_add_months_rolls_year(self):
        assert add_months(datetime(2026, 11, 5, 8, 30), 3) == datetime(2027, 2, 5, 8, 30)


class TestSchedule:

    def test_duration_sale(self):
        now = datetime(2026, 1, 20, 10, 0)
        entries = schedule_gym_invoices(
            gym_id=1, transaction_id=7, now=now, end_dates=[now + timedelta(days=60)], fee=FEE,
        )
        assert _months(entries) == [(2026, 1), (2026, 2), (2026, 3)]
        assert all(e.fee == Decimal("5000.00") for e in entries)
        assert all(e.transaction_id == 7 for e in entries)
        assert entries[0].transaction_date == now

    def test_longest_line_wins(self):
        now = datetime(2026, 1, 20)
        entries = schedule_gym_invoices(
            gym_id=1, transaction_id=None, now=now,
            end_dates=[now + timedelta(days=10), None, now + timedelta(days=100)],
            fee=FEE,
        )
        assert _months(entries) == [(2026, 1), (2026, 2), (2026, 3), (2026, 4)]

    def test_no_duration_bills_current_month(self):
        now = datetime(2026, 5, 3)
        entries = schedule_gym_invoices(gym_id=1, transaction_id=None, now=now, end_dates=[], fee=FEE)
        assert _months(entries) == [(2026, 5)]

    def test_extra_month_switch(self):
        now = datetime(2026, 1, 20)
        entries = schedule_gym_invoices(
            gym_id=1, transaction_id=None, now=now,
            end_dates=[now + timedelta(days=60)], fee=FEE, include_extra_month=True,
        )
        assert _months(entries) == [(2026, 1), (2026, 2), (2026, 3), (2026, 4)]

    def test_year_rollover(self):
        now = datetime(2026, 12, 15)
        entries = schedule_gym_invoices(
            gym_id=1, transaction_id=None, now=now, end_dates=[now + timedelta(days=30)], fee=FEE,
        )
        assert _months(entries) == [(2026, 12), (2027, 1)]

    def test_zero_fee_schedules_nothing(self):
        now = datetime(2026, 1, 20)
        entries = schedule_gym_invoices(
            gym_id=1, transaction_id=None, now=now, end_dates=[now + timedelta(days=60)], fee=Decimal("0"),
        )
        assert entries == []


class TestReporting:

    def _bill(self, db_session, gym, now, days):
        entries = schedule_gym_invoices(
            gym_id=gym.id, transaction_id=None, now=now, end_dates=[now + timedelta(days=days)], fee=FEE,
        )
        append_gym_invoices(db_session, entries)
        db_session.commit()

    def test_list_by_month(self, db_session, gym_a, gym_b):
        self._bill(db_session, gym_a, datetime(2026, 1, 20), 60)   # Jan, Feb, Mar
        self._bill(db_session, gym_a, datetime(2026, 2, 1), 0)     # Feb
        self._bill(db_session, gym_b, datetime(2026, 2, 1), 0)     # other gym

        february = invoice_service.list_gym_invoices(gym_a.id, month=2, year=2026)
        assert february["total_transactions"] == 2
        assert february["total_fee"] == "10000.00"
        assert len(february["invoices"]) == 2

        april = invoice_service.list_gym_invoices(gym_a.id, month=4, year=2026)
        assert april["total_transactions"] == 0
        assert april["total_fee"] == "0.00"

    def test_invalid_month(self, db_session, gym_a):
        with pytest.raises(ValueError):
            invoice_service.list_gym_invoices(gym_a.id, month=13, year=2026)

    def test_yearly_summary(self, db_session, gym_a):
        self._bill(db_session, gym_a, datetime(2026, 1, 20), 60)

        summary = invoice_service.get_yearly_summary(gym_a.id, 2026)
        assert len(summary["months"]) == 12
        assert [m["total_transactions"] for m in summary["months"][:4]] == [1, 1, 1, 0]
        assert summary["total_fee"] == "15000.00"
