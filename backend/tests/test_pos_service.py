# Overview: Pytest coverage for POS settlement: totals, discounts, wallet credit, gym invoices and rollback.

"""
POS Settlement Tests

A settlement either commits everything (transaction, lines, discount usage,
wallet delta, wallet ledger entry, gym invoices) or nothing at all.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from gympos.models import (
    Discount, GymInvoice, PosTransaction, PosTransactionItem, Product, Wallet, WalletTransaction,
)
from gympos.models.wallets import WALLET_CARD, WALLET_CASH, TX_INCOME, REF_POS_TRANSACTION
from gympos.services import pos_service, wallet_service
from gympos.services.discount_service import (
    DiscountExpired, DiscountMinimumNotMet, DiscountNotFound, DiscountUsageLimitReached,
)
from gympos.services.members_service import MemberNotFound
from gympos.services.products_service import MAX_LINE_QUANTITY, InvalidLineItems
from gympos.services.wallet_service import (
    ConcurrentBalanceConflict, InvalidPaymentMethod, WalletInactive, WalletNotFound,
)
from gympos.validation import ValidationError
from conftest import make_discount


NOW = datetime(2026, 1, 20, 10, 0, 0)


def _sale(product, quantity=2, **extra):
    payload = {
        "items": [{"product_id": product.id, "quantity": quantity}],
        "payment_method": "cash",
    }
    payload.update(extra)
    return payload


def _wallet(db_session, gym, wallet_type=WALLET_CASH):
    return db_session.query(Wallet).filter_by(gym_id=gym.id, wallet_type=wallet_type).one()


def _assert_nothing_written(db_session, gym):
    assert db_session.query(PosTransaction).count() == 0
    assert db_session.query(PosTransactionItem).count() == 0
    assert db_session.query(WalletTransaction).count() == 0
    assert db_session.query(GymInvoice).count() == 0
    for wallet in db_session.query(Wallet).filter_by(gym_id=gym.id).all():
        assert wallet.current_balance == Decimal("0")
        assert wallet.total_income == Decimal("0")


class TestSettlementTotals:
    """Subtotal, discount and total computation."""

    def test_plain_sale_credits_wallet(self, db_session, gym_a, staff_a, retail_a):
        """Two units at 100000 with no discount settle for 200000."""
        tx = pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), staff_id=staff_a.id, now=NOW)

        assert tx.subtotal == Decimal("200000")
        assert tx.discount_amount == Decimal("0")
        assert tx.total == Decimal("200000")
        assert tx.status == "completed"
        assert tx.staff_id == staff_a.id
        assert tx.transaction_number.startswith("POS-20260120-")

        wallet = _wallet(db_session, gym_a)
        assert wallet.current_balance == Decimal("200000")
        assert wallet.total_income == Decimal("200000")
        assert wallet.today_income == Decimal("200000")

        ledger = db_session.query(WalletTransaction).filter_by(wallet_id=wallet.id).one()
        assert ledger.transaction_type == TX_INCOME
        assert ledger.amount == Decimal("200000")
        assert ledger.reference_type == REF_POS_TRANSACTION
        assert ledger.reference_id == str(tx.id)

    def test_percentage_discount_is_capped(self, db_session, gym_a, retail_a):
        """20% of 200000 is 40000, capped at max_discount 30000."""
        discount = make_discount(
            db_session, gym_a,
            discount_type="percentage", value=Decimal("20"), max_discount=Decimal("30000"),
        )

        tx = pos_service.create_pos_transaction(
            gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW
        )

        assert tx.discount_amount == Decimal("30000")
        assert tx.total == Decimal("170000")
        assert tx.discount_id == discount.id
        assert _wallet(db_session, gym_a).current_balance == Decimal("170000")
        assert db_session.get(Discount, discount.id).used_count == 1

    def test_fixed_discount_never_exceeds_subtotal(self, db_session, gym_a, retail_a):
        discount = make_discount(db_session, gym_a, discount_type="fixed", value=Decimal("500000"))

        tx = pos_service.create_pos_transaction(
            gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW
        )

        assert tx.discount_amount == Decimal("200000")
        assert tx.total == Decimal("0")
        assert _wallet(db_session, gym_a).current_balance == Decimal("0")

    def test_minimum_purchase_not_met_writes_nothing(self, db_session, gym_a, retail_a):
        discount = make_discount(db_session, gym_a, min_purchase=Decimal("300000"))

        with pytest.raises(DiscountMinimumNotMet):
            pos_service.create_pos_transaction(
                gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW
            )

        _assert_nothing_written(db_session, gym_a)
        assert db_session.get(Discount, discount.id).used_count == 0

    def test_lines_snapshot_product(self, db_session, gym_a, product_a, retail_a):
        payload = {
            "items": [
                {"product_id": product_a.id, "quantity": 2},
                {"product_id": retail_a.id, "quantity": 1},
            ],
            "payment_method": "cash",
        }
        tx = pos_service.create_pos_transaction(gym_a.id, payload, now=NOW)

        items = db_session.query(PosTransactionItem).filter_by(transaction_id=tx.id).order_by(PosTransactionItem.id).all()
        assert len(items) == 2
        assert sum((item.subtotal for item in items), Decimal("0")) == tx.subtotal

        membership, retail = items
        assert membership.name == "Monthly Pass"
        assert membership.price == Decimal("100000")
        assert membership.start_date == NOW
        assert membership.end_date == NOW + timedelta(days=60)
        assert retail.start_date is None
        assert retail.end_date is None


class TestSettlementRejections:
    """Every rejected settlement leaves the database untouched."""

    def test_foreign_product_is_invalid(self, db_session, gym_a, gym_b, product_b):
        with pytest.raises(InvalidLineItems) as exc_info:
            pos_service.create_pos_transaction(gym_a.id, _sale(product_b), now=NOW)

        assert exc_info.value.details["missing_product_ids"] == [product_b.id]
        _assert_nothing_written(db_session, gym_a)

    def test_inactive_product_is_invalid(self, db_session, gym_a, retail_a):
        retail_a.is_active = False
        db_session.commit()

        with pytest.raises(InvalidLineItems):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)

    def test_empty_items_rejected(self, db_session, gym_a):
        with pytest.raises(InvalidLineItems):
            pos_service.create_pos_transaction(gym_a.id, {"items": [], "payment_method": "cash"}, now=NOW)

    def test_non_positive_quantity_rejected(self, db_session, gym_a, retail_a):
        with pytest.raises(InvalidLineItems):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, quantity=0), now=NOW)

    def test_unknown_payment_method(self, db_session, gym_a, retail_a):
        with pytest.raises(InvalidPaymentMethod):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, payment_method="crypto"), now=NOW)

        _assert_nothing_written(db_session, gym_a)

    def test_missing_payment_method(self, db_session, gym_a, retail_a):
        payload = _sale(retail_a)
        del payload["payment_method"]
        with pytest.raises(ValidationError):
            pos_service.create_pos_transaction(gym_a.id, payload, now=NOW)

    def test_unknown_member(self, db_session, gym_a, retail_a):
        with pytest.raises(MemberNotFound):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, member_id=99999), now=NOW)

        _assert_nothing_written(db_session, gym_a)

    def test_member_is_attached(self, db_session, gym_a, retail_a, member_a):
        tx = pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, member_id=member_a.id), now=NOW)
        assert tx.member_id == member_a.id
        assert tx.to_dict()["member"]["name"] == "Alice Lifter"

    def test_foreign_discount_not_found(self, db_session, gym_a, gym_b, retail_a):
        discount = make_discount(db_session, gym_b, code="BETA10")

        with pytest.raises(DiscountNotFound):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW)

    def test_inactive_discount_not_found(self, db_session, gym_a, retail_a):
        discount = make_discount(db_session, gym_a, is_active=False)

        with pytest.raises(DiscountNotFound):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW)

    def test_expired_discount(self, db_session, gym_a, retail_a):
        discount = make_discount(db_session, gym_a, valid_until=NOW - timedelta(days=1))

        with pytest.raises(DiscountExpired):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW)

        _assert_nothing_written(db_session, gym_a)

    def test_discount_usage_limit(self, db_session, gym_a, retail_a):
        discount = make_discount(db_session, gym_a, usage_limit=1, used_count=1)

        with pytest.raises(DiscountUsageLimitReached):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW)

    def test_quantity_above_line_cap(self, db_session, gym_a, product_a):
        with pytest.raises(InvalidLineItems) as exc_info:
            pos_service.create_pos_transaction(gym_a.id, _sale(product_a, quantity=400000), now=NOW)

        assert exc_info.value.details["max_quantity"] == MAX_LINE_QUANTITY
        _assert_nothing_written(db_session, gym_a)

    def test_access_period_out_of_range(self, db_session, gym_a):
        product = Product(
            gym_id=gym_a.id, name="Lifetime Pass", category="membership",
            price=Decimal("1000.00"), duration=500000, is_active=True,
        )
        db_session.add(product)
        db_session.commit()

        with pytest.raises(InvalidLineItems):
            pos_service.create_pos_transaction(gym_a.id, _sale(product, quantity=MAX_LINE_QUANTITY), now=NOW)

        _assert_nothing_written(db_session, gym_a)

    def test_subtotal_above_money_range(self, db_session, gym_a):
        product = Product(
            gym_id=gym_a.id, name="Franchise Licence", category="retail",
            price=Decimal("600000000000.00"), is_active=True,
        )
        db_session.add(product)
        db_session.commit()

        with pytest.raises(InvalidLineItems):
            pos_service.create_pos_transaction(gym_a.id, _sale(product, quantity=2), now=NOW)

        _assert_nothing_written(db_session, gym_a)

    def test_inactive_wallet_rolls_back_inserted_rows(self, db_session, gym_a, retail_a):
        """The transaction row is inserted before the wallet is checked; it must not survive."""
        wallet = _wallet(db_session, gym_a)
        wallet.is_active = False
        db_session.commit()

        with pytest.raises(WalletInactive):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)

        _assert_nothing_written(db_session, gym_a)

    def test_missing_wallet(self, db_session, gym_a, retail_a):
        db_session.query(Wallet).filter_by(gym_id=gym_a.id, wallet_type=WALLET_CARD).delete()
        db_session.commit()

        with pytest.raises(WalletNotFound):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, payment_method="card"), now=NOW)

        _assert_nothing_written(db_session, gym_a)

    def test_discount_usage_rolled_back_with_failed_settlement(self, db_session, gym_a, retail_a):
        discount = make_discount(db_session, gym_a)
        wallet = _wallet(db_session, gym_a)
        wallet.is_active = False
        db_session.commit()

        with pytest.raises(WalletInactive):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW)

        assert db_session.get(Discount, discount.id).used_count == 0


class TestSettlementConcurrency:

    def test_concurrent_wallet_change_aborts_settlement(self, db_session, gym_a, retail_a, monkeypatch):
        """Another writer bumps the wallet between read and update: 409 and nothing written."""
        real_find_wallet = wallet_service.find_wallet

        def find_then_race(session, gym_id, wallet_type, lock=True):
            wallet = real_find_wallet(session, gym_id, wallet_type, lock=lock)
            session.query(Wallet).filter(Wallet.id == wallet.id).update(
                {Wallet.version_id: Wallet.version_id + 1},
                synchronize_session=False,
            )
            return wallet

        monkeypatch.setattr(wallet_service, "find_wallet", find_then_race)

        with pytest.raises(ConcurrentBalanceConflict) as exc_info:
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)

        assert exc_info.value.status_code == 409
        monkeypatch.undo()
        _assert_nothing_written(db_session, gym_a)

    def test_last_discount_use_taken_concurrently(self, db_session, gym_a, retail_a, monkeypatch):
        """Another sale consumes the last use between resolve and increment: rejected, nothing written."""
        discount = make_discount(db_session, gym_a, usage_limit=1, used_count=0)
        real_resolve = pos_service.resolve_discount

        def resolve_then_race(gym_id, discount_id, now=None):
            resolved = real_resolve(gym_id, discount_id, now)
            db_session.query(Discount).filter(Discount.id == discount_id).update(
                {Discount.used_count: Discount.used_count + 1},
                synchronize_session=False,
            )
            return resolved

        monkeypatch.setattr(pos_service, "resolve_discount", resolve_then_race)

        with pytest.raises(DiscountUsageLimitReached):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW)

        monkeypatch.undo()
        _assert_nothing_written(db_session, gym_a)
        assert db_session.get(Discount, discount.id).used_count == 0

    def test_identical_requests_settle_twice(self, db_session, gym_a, retail_a):
        """Settlements are not idempotent: a resubmission is a new sale."""
        first = pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)
        second = pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)

        assert first.id != second.id
        assert first.transaction_number != second.transaction_number
        assert db_session.query(PosTransaction).count() == 2
        assert db_session.query(WalletTransaction).count() == 2
        assert _wallet(db_session, gym_a).current_balance == Decimal("400000")

    def test_wallet_matches_ledger_after_many_sales(self, db_session, gym_a, retail_a):
        discount = make_discount(db_session, gym_a, value=Decimal("15"))
        for quantity in (1, 2, 3):
            pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, quantity=quantity), now=NOW)
        pos_service.create_pos_transaction(
            gym_a.id, _sale(retail_a, quantity=1, discount_id=discount.id), now=NOW
        )

        wallet = _wallet(db_session, gym_a)
        result = wallet_service.reconcile_wallet(wallet.id)
        assert result["balanced"] is True
        assert wallet.current_balance == Decimal("685000")


class TestSettlementInvoices:
    """Gym invoice rows emitted by a settlement."""

    def test_duration_sale_bills_each_month(self, db_session, gym_a, product_a):
        """30 days x 2 bought Jan 20 ends Mar 21: Jan, Feb and Mar are billed."""
        tx = pos_service.create_pos_transaction(gym_a.id, _sale(product_a), now=NOW)

        rows = db_session.query(GymInvoice).filter_by(transaction_id=tx.id).order_by(GymInvoice.id).all()
        assert [(r.year, r.month) for r in rows] == [(2026, 1), (2026, 2), (2026, 3)]
        assert all(r.fee == Decimal("5000") for r in rows)
        assert all(r.gym_id == gym_a.id for r in rows)

    def test_sale_without_duration_bills_current_month(self, db_session, gym_a, retail_a):
        tx = pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)

        rows = db_session.query(GymInvoice).filter_by(transaction_id=tx.id).all()
        assert [(r.year, r.month) for r in rows] == [(2026, 1)]

    def test_legacy_extra_month(self, app, db_session, gym_a, product_a, monkeypatch):
        monkeypatch.setitem(app.config, "GYM_INVOICE_INCLUDE_EXTRA_MONTH", True)

        tx = pos_service.create_pos_transaction(gym_a.id, _sale(product_a), now=NOW)

        rows = db_session.query(GymInvoice).filter_by(transaction_id=tx.id).order_by(GymInvoice.id).all()
        assert [(r.year, r.month) for r in rows] == [(2026, 1), (2026, 2), (2026, 3), (2026, 4)]

    def test_zero_fee_bills_nothing(self, app, db_session, gym_a, product_a, monkeypatch):
        monkeypatch.setitem(app.config, "PLATFORM_FEE_PER_TRANSACTION", Decimal("0"))

        pos_service.create_pos_transaction(gym_a.id, _sale(product_a), now=NOW)

        assert db_session.query(GymInvoice).count() == 0
        assert db_session.query(PosTransaction).count() == 1


class TestPosManagement:

    def test_get_is_tenant_scoped(self, db_session, gym_a, gym_b, retail_a):
        tx = pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)

        assert pos_service.get_pos_transaction(gym_a.id, tx.id).id == tx.id
        with pytest.raises(pos_service.PosTransactionNotFound):
            pos_service.get_pos_transaction(gym_b.id, tx.id)

    def test_update_status_and_notes_only(self, db_session, gym_a, retail_a):
        tx = pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)

        updated = pos_service.update_pos_transaction(gym_a.id, tx.id, {"status": "refunded", "notes": "returned"})
        assert updated.status == "refunded"
        assert updated.notes == "returned"
        assert updated.total == Decimal("200000")

        with pytest.raises(ValidationError):
            pos_service.update_pos_transaction(gym_a.id, tx.id, {"total": "1"})
        with pytest.raises(ValidationError):
            pos_service.update_pos_transaction(gym_a.id, tx.id, {"status": "lost"})

    def test_list_filters_and_search(self, db_session, gym_a, gym_b, retail_a, member_a):
        pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, member_id=member_a.id), now=NOW)
        pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW + timedelta(days=1))

        result = pos_service.list_pos_transactions(gym_a.id, page=1, limit=10)
        assert result["meta"]["total"] == 2
        assert result["data"][0].created_at > result["data"][1].created_at

        by_member = pos_service.list_pos_transactions(gym_a.id, search="Alice")
        assert by_member["meta"]["total"] == 1

        ranged = pos_service.list_pos_transactions(gym_a.id, start_date=NOW + timedelta(hours=1))
        assert ranged["meta"]["total"] == 1

        assert pos_service.list_pos_transactions(gym_b.id)["meta"]["total"] == 0

    def test_stats(self, db_session, gym_a, retail_a):
        discount = make_discount(db_session, gym_a, discount_type="fixed", value=Decimal("50000"))
        pos_service.create_pos_transaction(gym_a.id, _sale(retail_a), now=NOW)
        pos_service.create_pos_transaction(gym_a.id, _sale(retail_a, discount_id=discount.id), now=NOW)

        stats = pos_service.get_pos_stats(gym_a.id)
        assert stats["total_transactions"] == 2
        assert Decimal(stats["total_revenue"]) == Decimal("350000")
        assert stats["total_discounts"] == 1
        assert stats["total_discount_usage"] == 1
