from datetime import date
from decimal import Decimal

import pytest

from conftest import account_id_by_name
from fintrack.models.transaction import TransactionStatus, TransactionType
from fintrack.services.accounts import AccountService
from fintrack.services.balance import BalanceService, balance_effect, signed_delta
from fintrack.services.ledger import TransactionRepository


class TestSignedDelta:
    def test_income_is_positive(self):
        """Income adds to the balance."""
        assert signed_delta(Decimal("12.50"), TransactionType.INCOME) == Decimal("12.50")

    def test_expense_is_negative(self):
        """Expense subtracts from the balance."""
        assert signed_delta(Decimal("12.50"), TransactionType.EXPENSE) == Decimal("-12.50")

    @pytest.mark.parametrize("status", [TransactionStatus.PENDING, TransactionStatus.CANCELLED])
    def test_only_cleared_has_effect(self, status):
        """Pending and Cancelled rows contribute nothing."""
        assert balance_effect(Decimal("9"), TransactionType.INCOME, status) == 0
        assert balance_effect(Decimal("9"), TransactionType.INCOME, TransactionStatus.CLEARED) == Decimal("9")


class TestBalances:
    async def test_totals_across_active_accounts(self, db, user):
        """Total balance sums active accounts only."""
        savings_id = await account_id_by_name(db, user.id, "Primary Savings")
        card_id = await account_id_by_name(db, user.id, "Credit Card")

        await TransactionRepository.create(db, user, savings_id, "Salary", "5000", "Income", date(2025, 5, 1))
        await TransactionRepository.create(db, user, card_id, "Travel", "1200", "Expense", date(2025, 5, 3))

        data = await BalanceService.get_balances(db, user)
        assert data["total_balance"] == Decimal("3800.00")
        assert [a["name"] for a in data["accounts"]] == ["Primary Savings", "Checking Account", "Credit Card"]
        assert "monthly_expenditure" not in data

        await AccountService.deactivate_account(db, user, card_id)
        data = await BalanceService.get_balances(db, user)
        assert data["total_balance"] == Decimal("5000.00")
        assert len(data["accounts"]) == 2

    async def test_monthly_expenditure(self, db, user):
        """Current-month expenses include Pending but not Cancelled rows."""
        card_id = await account_id_by_name(db, user.id, "Credit Card")
        await TransactionRepository.create(db, user, card_id, "Food", "100", "Expense", date(2025, 5, 3))
        await TransactionRepository.create(db, user, card_id, "Food", "40", "Expense", date(2025, 5, 9),
                                           status="Pending")
        cancelled = await TransactionRepository.create(db, user, card_id, "Food", "15", "Expense",
                                                       date(2025, 5, 10))
        await TransactionRepository.update(db, cancelled.id, user, {"status": "Cancelled"})
        await TransactionRepository.create(db, user, card_id, "Food", "999", "Expense", date(2025, 4, 30))

        data = await BalanceService.get_balances(db, user, include_monthly=True, today=date(2025, 5, 20))
        assert data["monthly_expenditure"] == Decimal("140.00")

    async def test_recompute_matches_stored(self, db, user):
        """Recomputing from the ledger gives the stored balance."""
        checking_id = await account_id_by_name(db, user.id, "Checking Account")
        await TransactionRepository.create(db, user, checking_id, "Freelance", "310.40", "Income", "2025-06-01")
        await TransactionRepository.create(db, user, checking_id, "Utilities", "45.15", "Expense", "2025-06-02")

        data = await BalanceService.get_balances(db, user)
        stored = next(a["balance"] for a in data["accounts"] if a["id"] == checking_id)
        assert await BalanceService.recompute(db, checking_id) == Decimal("265.25")
        assert Decimal(stored).quantize(Decimal("0.01")) == Decimal("265.25")
