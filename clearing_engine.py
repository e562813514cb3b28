"""
Eisenberg-Noe clearing payments.

The clearing vector is the greatest fixed point of

    phi(p) = min(p_bar, max(0, R^T p + e - s))

where p_bar are the due payments, R the relative liabilities, e the outside
assets and s the shock. Iteration starts from p_bar and decreases
monotonically; it stops once successive iterates differ by less than the
tolerance in max-norm, or after ``max_iterations`` steps, in which case the
last iterate is returned with ``converged=False``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from errors import InvalidParameter
from network_generator import Network
from settings import SIMULATION_CONFIG

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClearingResult:
    """Outcome of one clearing computation."""
    payments: np.ndarray
    iterations: int       # 0 when no iteration was needed
    converged: bool
    max_change: float     # max-norm distance between the last two iterates


def compute_clearing_vector(
    due_payments: np.ndarray,
    relative_liabilities: np.ndarray,
    outside_asset: np.ndarray,
    shock: np.ndarray,
    max_iterations: int = SIMULATION_CONFIG['MAX_ITERATIONS'],
    tolerance: float = SIMULATION_CONFIG['CONVERGENCE_TOLERANCE']
) -> ClearingResult:
    """
    Compute the clearing payment vector.

    Args:
        due_payments: Total each bank owes (p_bar)
        relative_liabilities: R, where R[i, j] is i's obligation to j over p_bar[i]
        outside_asset: Outside assets before the shock
        shock: Non-negative shock on outside assets
        max_iterations: Iteration cap
        tolerance: Max-norm convergence threshold

    Returns:
        ClearingResult with the payments and convergence information
    """
    if max_iterations < 1:
        raise InvalidParameter(f"max_iterations must be at least 1, got {max_iterations}")
    if tolerance <= 0:
        raise InvalidParameter(f"tolerance must be positive, got {tolerance}")

    due = np.asarray(due_payments, dtype=float)
    shock = np.asarray(shock, dtype=float)
    if shock.shape != due.shape:
        raise InvalidParameter(f"Shock vector must have length {due.shape[0]}")

    # Without a shock nobody can fall short
    if not np.any(shock):
        return ClearingResult(due.copy(), 0, True, 0.0)

    available = np.asarray(outside_asset, dtype=float) - shock
    RT = np.asarray(relative_liabilities, dtype=float).T
    payments = due.copy()
    change = 0.0

    for iteration in range(1, max_iterations + 1):
        received = RT @ payments
        new_payments = np.minimum(due, np.maximum(received + available, 0.0))
        change = float(np.max(np.abs(new_payments - payments)))
        if change < tolerance:
            logger.debug("Clearing converged after %d iteration(s)", iteration)
            return ClearingResult(new_payments, iteration, True, change)
        payments = new_payments

    logger.warning(
        "Clearing did not converge within %d iterations (last change %.6f)",
        max_iterations, change
    )
    return ClearingResult(payments, max_iterations, False, change)


class ClearingEngine:
    """
    Eisenberg-Noe solver bound to an iteration budget.
    """

    def __init__(
        self,
        max_iterations: int = SIMULATION_CONFIG['MAX_ITERATIONS'],
        tolerance: float = SIMULATION_CONFIG['CONVERGENCE_TOLERANCE']
    ):
        if max_iterations < 1:
            raise InvalidParameter(f"max_iterations must be at least 1, got {max_iterations}")
        if tolerance <= 0:
            raise InvalidParameter(f"tolerance must be positive, got {tolerance}")
        self.max_iterations = int(max_iterations)
        self.tolerance = float(tolerance)

    def clear(
        self,
        network: Network,
        shock: np.ndarray,
        outside_asset: Optional[np.ndarray] = None
    ) -> ClearingResult:
        """
        Clear a network under a shock.

        Args:
            network: Network supplying due payments and relative liabilities
            shock: Validated shock vector
            outside_asset: Pre-shock outside assets (default: the network's current ones)

        Returns:
            ClearingResult
        """
        if outside_asset is None:
            outside_asset = network.outside_asset
        return compute_clearing_vector(
            network.due_payments,
            network.relative_liabilities,
            outside_asset,
            shock,
            max_iterations=self.max_iterations,
            tolerance=self.tolerance
        )

    @staticmethod
    def received_payments(network: Network, payments: np.ndarray) -> np.ndarray:
        """
        Interbank amount each bank actually collects under a payment vector.

        Each creditor receives the debtor's paid fraction of its nominal claim.
        """
        due = network.due_payments
        paid_ratio = np.divide(
            np.asarray(payments, dtype=float), due,
            out=np.zeros_like(due, dtype=float), where=due > 0
        )
        return network.obligations.T @ np.minimum(paid_ratio, 1.0)
