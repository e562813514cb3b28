"""
Bank balance sheet for interbank contagion simulation.
"""

from typing import Dict

from errors import InvalidParameter


class Bank:
    """
    Represents one institution in the obligation network.

    Attributes:
        outside_asset (float): Assets held outside the interbank market
        interbank_asset (float): Claims on other banks
        outside_liability (float): Debts owed outside the interbank market
        interbank_liability (float): Debts owed to other banks
        balance (float): Net worth from the accounting identity
    """

    def __init__(
        self,
        outside_asset: float,
        interbank_asset: float,
        outside_liability: float,
        interbank_liability: float
    ):
        """
        Initialize a Bank instance.

        Args:
            outside_asset: Outside (external) assets
            interbank_asset: Total owed to this bank by other banks
            outside_liability: Outside (external) liabilities
            interbank_liability: Total this bank owes other banks

        Raises:
            InvalidParameter: If any balance sheet item is negative
        """
        if min(outside_asset, interbank_asset, outside_liability, interbank_liability) < 0:
            raise InvalidParameter("Balance sheet items must be non-negative")

        self.outside_asset = float(outside_asset)
        self.interbank_asset = float(interbank_asset)
        self.outside_liability = float(outside_liability)
        self.interbank_liability = float(interbank_liability)
        self.balance = self.calculate_balance()
        self.is_defaulted = self.balance <= 0

    def calculate_balance(self) -> float:
        """Assets minus liabilities."""
        return (self.outside_asset + self.interbank_asset
                - self.outside_liability - self.interbank_liability)

    def update_balance(self) -> float:
        """
        Recompute the balance and default flag from the current items.

        Returns:
            The new balance
        """
        self.balance = self.calculate_balance()
        self.is_defaulted = self.balance <= 0
        return self.balance

    def is_default(self) -> bool:
        return self.balance <= 0

    def set_outside_asset(self, value: float) -> None:
        self.outside_asset = float(value)

    def set_interbank_asset(self, value: float) -> None:
        self.interbank_asset = float(value)

    def get_balance_sheet(self) -> Dict[str, float]:
        """
        Get a snapshot of the bank's balance sheet.

        Returns:
            Dictionary containing all balance sheet items
        """
        return {
            'outside_asset': self.outside_asset,
            'interbank_asset': self.interbank_asset,
            'outside_liability': self.outside_liability,
            'interbank_liability': self.interbank_liability,
            'total_assets': self.outside_asset + self.interbank_asset,
            'total_liabilities': self.outside_liability + self.interbank_liability,
            'balance': self.balance,
            'is_defaulted': self.is_defaulted
        }

    def __repr__(self) -> str:
        return (f"Bank(outside_asset={self.outside_asset:.2f}, "
                f"interbank_asset={self.interbank_asset:.2f}, "
                f"balance={self.balance:.2f}, defaulted={self.is_defaulted})")
