"""
Shock Generator and Contagion Simulator for Eisenberg-Noe clearing.

A run applies an exogenous shock to outside assets, clears the interbank
market if any bank defaulted, and measures the systemic impact.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from clearing_engine import ClearingEngine, ClearingResult
from errors import InvalidParameter, ShockExceedsAssets
from network_generator import Network
from settings import SIMULATION_CONFIG

logger = logging.getLogger(__name__)


class ShockType(Enum):
    """Which banks a shock hits."""
    UNIFORM = "uniform"                  # Every bank
    TARGETED_RANDOM = "targeted_random"  # One bank picked at random
    CORE = "core"                        # Core banks of a core-periphery network
    PERIPHERY = "periphery"              # Periphery banks of a core-periphery network

    @classmethod
    def parse(cls, value: Union["ShockType", str]) -> "ShockType":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace('-', '_')
        if key == 'targeted':
            key = cls.TARGETED_RANDOM.value
        for shock_type in cls:
            if shock_type.value == key:
                return shock_type
        raise InvalidParameter(f"Unknown shock type: {value!r}")


@dataclass(frozen=True)
class SimulationStep:
    """Records the network state after one stage of a run."""
    step_index: int
    default_vector: np.ndarray
    default_count: int
    shock_measure: float


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of one shock scenario."""
    final_payments: Optional[np.ndarray]   # None when clearing was not needed
    shock_measure: float
    default_count: int
    default_count_proportion: float
    vulnerability_measure: float
    steps: Tuple[SimulationStep, ...] = field(default_factory=tuple)
    iterations: int = 0
    converged: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'final_payments': None if self.final_payments is None else self.final_payments.tolist(),
            'shock_measure': self.shock_measure,
            'default_count': self.default_count,
            'default_count_proportion': self.default_count_proportion,
            'vulnerability_measure': self.vulnerability_measure,
            'iterations': self.iterations,
            'converged': self.converged,
            'steps': [
                {
                    'step': s.step_index,
                    'default_vector': s.default_vector.tolist(),
                    'default_count': s.default_count,
                    'shock_measure': s.shock_measure
                }
                for s in self.steps
            ]
        }


def _check_magnitude(magnitude: float) -> float:
    try:
        value = float(magnitude)
    except (TypeError, ValueError):
        raise InvalidParameter(f"Shock magnitude must be a number, got {magnitude!r}") from None
    if not 0.0 <= value <= 1.0:
        raise InvalidParameter(f"Shock magnitude must be between 0 and 1, got {magnitude}")
    return value


class ShockGenerator:
    """
    Builds shock vectors as a fraction of each targeted bank's outside assets.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        """Initialize with optional random seed or generator."""
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def targeted_shock(
        self,
        network: Network,
        magnitude: float,
        targets: Sequence[int]
    ) -> np.ndarray:
        """
        Shock the given banks by ``magnitude`` of their outside assets.

        Args:
            network: Network to shock
            magnitude: Fraction of outside assets lost (0.0 to 1.0)
            targets: Indices of the affected banks

        Returns:
            Shock vector
        """
        magnitude = _check_magnitude(magnitude)
        shock = np.zeros(network.number_of_banks)
        idx = np.asarray(list(targets), dtype=int)
        if idx.size and (idx.min() < 0 or idx.max() >= network.number_of_banks):
            raise InvalidParameter("Shock target index out of range")
        shock[idx] = network.outside_asset[idx] * magnitude
        return shock

    def uniform_shock(self, network: Network, magnitude: float) -> np.ndarray:
        return self.targeted_shock(network, magnitude, range(network.number_of_banks))

    def random_bank_shock(self, network: Network, magnitude: float) -> np.ndarray:
        target = int(self.rng.integers(network.number_of_banks))
        return self.targeted_shock(network, magnitude, [target])

    def core_shock(self, network: Network, magnitude: float) -> np.ndarray:
        if network.core_size == 0:
            raise InvalidParameter("Network has no core banks to target")
        return self.targeted_shock(network, magnitude, range(network.core_size))

    def periphery_shock(self, network: Network, magnitude: float) -> np.ndarray:
        if network.core_size == 0:
            raise InvalidParameter("Network has no core/periphery split to target")
        return self.targeted_shock(
            network, magnitude, range(network.core_size, network.number_of_banks)
        )

    def build(
        self,
        network: Network,
        magnitude: float,
        shock_type: Union[ShockType, str] = ShockType.UNIFORM
    ) -> np.ndarray:
        """Dispatch on the shock type."""
        shock_type = ShockType.parse(shock_type)
        builders = {
            ShockType.UNIFORM: self.uniform_shock,
            ShockType.TARGETED_RANDOM: self.random_bank_shock,
            ShockType.CORE: self.core_shock,
            ShockType.PERIPHERY: self.periphery_shock,
        }
        return builders[shock_type](network, magnitude)


def validate_shock(network: Network, shock_vector: Sequence[float]) -> np.ndarray:
    """
    Check a shock vector against a network without touching it.

    Returns:
        The shock as a float array

    Raises:
        InvalidParameter: Wrong length, negative or non-finite entries
        ShockExceedsAssets: Some shock[i] > outside_asset[i]
    """
    shock = np.array(shock_vector, dtype=float)
    if shock.shape != (network.number_of_banks,):
        raise InvalidParameter(
            f"Shock vector must have length {network.number_of_banks}, got shape {shock.shape}"
        )
    if not np.all(np.isfinite(shock)) or np.any(shock < 0):
        raise InvalidParameter("Shock vector must be finite and non-negative")
    exceeding = np.flatnonzero(shock > network.outside_asset)
    if exceeding.size:
        raise ShockExceedsAssets(exceeding)
    return shock


class ContagionSimulator:
    """
    Runs one shock scenario end to end on a network it owns for the run.

    Stages: initial state, shock applied, clearing (only if some bank
    defaulted after the shock), impact measurement.
    """

    def __init__(
        self,
        network: Network,
        shock_vector: Sequence[float],
        max_iterations: int = SIMULATION_CONFIG['MAX_ITERATIONS'],
        tolerance: float = SIMULATION_CONFIG['CONVERGENCE_TOLERANCE']
    ):
        """
        Initialize the simulator.

        Args:
            network: Network to shock (mutated in place)
            shock_vector: Loss on each bank's outside assets
            max_iterations: Clearing iteration cap
            tolerance: Clearing convergence threshold
        """
        self.network = network
        self.shock_vector = np.array(shock_vector, dtype=float)
        self.engine = ClearingEngine(max_iterations, tolerance)

        self.steps: List[SimulationStep] = []
        self.final_payments: Optional[np.ndarray] = None
        self.clearing: Optional[ClearingResult] = None
        self._pre_shock_assets: Optional[np.ndarray] = None
        self._has_run = False

    @property
    def shock_measure(self) -> float:
        """Share of total outside assets destroyed by the shock."""
        total = self.network.sum_outside_assets
        if total <= 0:
            return 0.0
        return float(self.shock_vector.sum() / total)

    def _record_step(self, shock_measure: float) -> None:
        defaults = self.network.default_vector.copy()
        defaults.setflags(write=False)
        self.steps.append(SimulationStep(
            step_index=len(self.steps),
            default_vector=defaults,
            default_count=int(defaults.sum()),
            shock_measure=shock_measure
        ))

    def _refresh_net_worth(self) -> None:
        self.network.net_worth = np.array([bank.balance for bank in self.network.banks])
        self.network.update_defaults()

    def apply_shock(self) -> np.ndarray:
        """
        Subtract the shock from outside assets.

        The whole vector is validated first; on failure nothing is mutated.

        Returns:
            Default vector after the shock
        """
        self.shock_vector = validate_shock(self.network, self.shock_vector)
        self._pre_shock_assets = self.network.outside_asset.copy()

        self.network.outside_asset -= self.shock_vector
        for i, bank in enumerate(self.network.banks):
            bank.set_outside_asset(self.network.outside_asset[i])
            bank.update_balance()
        self._refresh_net_worth()
        return self.network.default_vector

    def clear(self) -> ClearingResult:
        """
        Compute clearing payments and revalue interbank claims with them.

        Returns:
            ClearingResult of the engine
        """
        if self._pre_shock_assets is None:
            raise RuntimeError("apply_shock() must run before clear()")

        result = self.engine.clear(self.network, self.shock_vector,
                                   outside_asset=self._pre_shock_assets)
        received = ClearingEngine.received_payments(self.network, result.payments)
        for i, bank in enumerate(self.network.banks):
            bank.set_outside_asset(self.network.outside_asset[i])
            bank.set_interbank_asset(received[i])
            bank.update_balance()
        self._refresh_net_worth()

        self.clearing = result
        self.final_payments = result.payments
        return result

    def measure_systemic_impact(self) -> Dict[str, float]:
        """
        Aggregate post-shock measures.

        Returns:
            shock_measure, default_count, default_count_proportion, vulnerability_measure
        """
        default_count = self.network.default_count
        return {
            'shock_measure': self.shock_measure,
            'default_count': default_count,
            'default_count_proportion': default_count / self.network.number_of_banks,
            'vulnerability_measure': float(np.max(self.network.vulnerability)),
        }

    def run(self) -> SimulationResult:
        """
        Run the scenario.

        Returns:
            SimulationResult

        Raises:
            ShockExceedsAssets, InvalidParameter: Invalid shock, network untouched
            RuntimeError: If the simulator already ran
        """
        if self._has_run:
            raise RuntimeError("A ContagionSimulator runs once; create a new one")
        self._has_run = True

        # Measure against the assets this run starts from
        self.network.sum_outside_assets = self.network.compute_sum_outside_assets()
        self._record_step(0.0)

        self.apply_shock()
        self._record_step(self.shock_measure)

        if self.network.default_vector.any():
            self.clear()
            self._record_step(self.shock_measure)

        impact = self.measure_systemic_impact()
        logger.debug(
            "Shock %.4f -> %d/%d defaults",
            impact['shock_measure'], impact['default_count'], self.network.number_of_banks
        )
        return SimulationResult(
            final_payments=self.final_payments,
            shock_measure=impact['shock_measure'],
            default_count=impact['default_count'],
            default_count_proportion=impact['default_count_proportion'],
            vulnerability_measure=impact['vulnerability_measure'],
            steps=tuple(self.steps),
            iterations=self.clearing.iterations if self.clearing else 0,
            converged=self.clearing.converged if self.clearing else True
        )


def apply_shock_and_clear(
    network: Network,
    shock_vector: Sequence[float],
    max_iterations: int = SIMULATION_CONFIG['MAX_ITERATIONS'],
    tolerance: float = SIMULATION_CONFIG['CONVERGENCE_TOLERANCE']
) -> SimulationResult:
    """Run one scenario on ``network`` (mutated in place)."""
    return ContagionSimulator(network, shock_vector, max_iterations, tolerance).run()
