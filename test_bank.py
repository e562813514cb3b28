"""
Unit tests for the Bank class.
"""

import pytest
from bank import Bank
from errors import InvalidParameter


class TestBank:
    """Test suite for Bank class."""

    def test_bank_initialization(self):
        """Test basic bank initialization."""
        bank = Bank(
            outside_asset=110,
            interbank_asset=3600,
            outside_liability=100,
            interbank_liability=3600
        )

        assert bank.outside_asset == 110
        assert bank.interbank_asset == 3600
        assert bank.outside_liability == 100
        assert bank.interbank_liability == 3600
        assert bank.balance == 10
        assert not bank.is_defaulted
        assert not bank.is_default()

    def test_bank_negative_values_raise_error(self):
        """Test that negative values raise InvalidParameter (a ValueError)."""
        with pytest.raises(InvalidParameter):
            Bank(outside_asset=-1, interbank_asset=0, outside_liability=0, interbank_liability=0)
        with pytest.raises(ValueError):
            Bank(outside_asset=0, interbank_asset=0, outside_liability=0, interbank_liability=-5)

    def test_zero_balance_is_default(self):
        """A bank with exactly zero net worth counts as defaulted."""
        bank = Bank(100, 0, 100, 0)

        assert bank.balance == 0
        assert bank.is_defaulted
        assert bank.is_default()

    def test_update_balance_after_loss(self):
        """Test that a loss on outside assets can push the bank into default."""
        bank = Bank(110, 3600, 100, 3600)

        bank.set_outside_asset(55)
        # Flag is stale until the balance is recomputed
        assert not bank.is_defaulted

        assert bank.update_balance() == -45
        assert bank.is_defaulted

    def test_update_balance_recovers(self):
        """Test that revaluing claims upward clears the default flag."""
        bank = Bank(10, 0, 0, 20)
        assert bank.is_defaulted

        bank.set_interbank_asset(15)
        bank.update_balance()

        assert bank.balance == 5
        assert not bank.is_defaulted

    def test_get_balance_sheet(self):
        """Test balance sheet snapshot."""
        bank = Bank(110, 3600, 100, 3600)

        snapshot = bank.get_balance_sheet()

        assert snapshot['total_assets'] == 3710
        assert snapshot['total_liabilities'] == 3700
        assert snapshot['balance'] == 10
        assert snapshot['is_defaulted'] is False

    def test_repr(self):
        bank = Bank(1, 2, 0, 0)
        assert 'balance=3.00' in repr(bank)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
