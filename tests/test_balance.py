"""
Tests for the balance tracker and the disposal-amount rule.
"""
import pytest

from agents.balance import BalanceTracker, disposal_amount
from ledger.addresses import associated_token_address
from ledger.errors import AccountNotFoundError, RateLimitedError


class TestDisposalAmount:

    @pytest.mark.parametrize("balance,pct,expected", [
        (1000, 25, 250),
        (999, 25, 249),          # floor, never round up
        (1, 50, 0),
        (7, 100, 7),
        (10**18 + 1, 50, 5 * 10**17),
        (1000, 0.1, 1),
        (1000, 33.3, 333),
    ])
    def test_floor_of_percentage(self, balance, pct, expected):
        assert disposal_amount(balance, pct) == expected

    @pytest.mark.parametrize("balance,pct", [(0, 25), (-10, 25), (1000, 0), (1000, -5)])
    def test_nothing_to_sell(self, balance, pct):
        assert disposal_amount(balance, pct) == 0

    @pytest.mark.parametrize("balance", [1, 3, 99, 12345, 10**15])
    @pytest.mark.parametrize("pct", [1, 12.5, 25, 99.9, 100])
    def test_never_exceeds_balance(self, balance, pct):
        amount = disposal_amount(balance, pct)

        assert 0 <= amount <= balance


class TestBalanceTracker:

    def test_initialize_derives_associated_account(self, mock_rpc, holder, mint):
        owner = str(holder.pubkey())
        tracker = BalanceTracker(mock_rpc, owner, mint)

        account = tracker.initialize()

        assert account == str(associated_token_address(owner, mint))
        assert tracker.initialize() == account

    @pytest.mark.asyncio
    async def test_get_balance_reads_token_account(self, mock_rpc, holder, mint):
        mock_rpc.get_token_account_balance.return_value = 1000
        tracker = BalanceTracker(mock_rpc, str(holder.pubkey()), mint)

        assert await tracker.get_balance() == 1000
        assert tracker.last_balance == 1000
        mock_rpc.get_token_account_balance.assert_awaited_once_with(tracker.token_account)

    @pytest.mark.asyncio
    async def test_missing_account_is_zero(self, mock_rpc, holder, mint):
        mock_rpc.get_token_account_balance.side_effect = AccountNotFoundError("could not find account")
        tracker = BalanceTracker(mock_rpc, str(holder.pubkey()), mint)

        assert await tracker.get_balance() == 0
        assert await tracker.calculate_disposal(25) == 0

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self, mock_rpc, holder, mint):
        mock_rpc.get_token_account_balance.side_effect = RateLimitedError("HTTP 429")
        tracker = BalanceTracker(mock_rpc, str(holder.pubkey()), mint)

        with pytest.raises(RateLimitedError):
            await tracker.calculate_disposal(25)

    @pytest.mark.asyncio
    async def test_calculate_disposal(self, mock_rpc, holder, mint):
        mock_rpc.get_token_account_balance.return_value = 1000
        tracker = BalanceTracker(mock_rpc, str(holder.pubkey()), mint)

        assert await tracker.calculate_disposal(25) == 250
