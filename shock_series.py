"""
Shock-magnitude sweeps over a fixed network.

Each magnitude runs on its own deep copy of the network, so nothing leaks
between runs. The resulting default-rate curve is used to locate a critical
threshold for reporting.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from contagion_simulator import ContagionSimulator, ShockGenerator, ShockType
from errors import InvalidParameter
from network_generator import Network, NetworkPolicy, generate_network
from settings import SIMULATION_CONFIG

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesPoint:
    """One magnitude of a sweep."""
    shock_magnitude: float
    shock_measure: float
    default_rate: float
    default_count: int
    iterations: int
    converged: bool


@dataclass(frozen=True)
class CurveAnalysis:
    """Shape of the default-rate curve."""
    convex_start: bool                 # slope never decreases in the first half
    accelerates_late: bool             # slope increases somewhere in the second half
    inflection_point: Optional[float]  # first slope increase above the default-rate floor


@dataclass
class ShockSeriesResult:
    """Default-rate curve of a sweep."""
    points: List[SeriesPoint]
    critical_threshold: Optional[float]
    analysis: CurveAnalysis
    cancelled: bool = False
    network: Optional[Network] = field(default=None, repr=False)

    @property
    def magnitudes(self) -> np.ndarray:
        return np.array([p.shock_magnitude for p in self.points])

    @property
    def default_rates(self) -> np.ndarray:
        return np.array([p.default_rate for p in self.points])

    def to_frame(self) -> pd.DataFrame:
        """One row per magnitude."""
        columns = list(SeriesPoint.__dataclass_fields__)
        return pd.DataFrame([asdict(p) for p in self.points], columns=columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'results': [
                {'shock_magnitude': p.shock_magnitude, 'default_rate': p.default_rate}
                for p in self.points
            ],
            'critical_threshold': self.critical_threshold,
        }


def shock_magnitudes(max_magnitude: float, steps: int) -> np.ndarray:
    """
    ``steps`` evenly spaced magnitudes in [0, max_magnitude], both ends included.

    Raises:
        InvalidParameter: steps < 2 or max_magnitude outside [0, 1]
    """
    if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)) or steps < 2:
        raise InvalidParameter(f"steps must be an integer of at least 2, got {steps!r}")
    try:
        top = float(max_magnitude)
    except (TypeError, ValueError):
        raise InvalidParameter(f"max_magnitude must be a number, got {max_magnitude!r}") from None
    if not 0.0 <= top <= 1.0:
        raise InvalidParameter(f"max_magnitude must be in [0, 1], got {max_magnitude}")
    return np.linspace(0.0, top, int(steps))


def find_critical_threshold(
    magnitudes: Sequence[float],
    default_rates: Sequence[float]
) -> Optional[float]:
    """
    Magnitude where the default rate jumps the most.

    Returns the midpoint of the adjacent pair with the largest positive
    increase (the first one on ties), or None if the rate never increases.
    """
    x = np.asarray(magnitudes, dtype=float)
    y = np.asarray(default_rates, dtype=float)
    if x.shape != y.shape:
        raise InvalidParameter("magnitudes and default_rates must have the same length")
    best_variation = 0.0
    threshold = None
    for i in range(1, len(x)):
        variation = y[i] - y[i - 1]
        if variation > best_variation:
            best_variation = variation
            threshold = float((x[i] + x[i - 1]) / 2)
    return threshold


def analyze_curve(
    magnitudes: Sequence[float],
    default_rates: Sequence[float],
    min_default_rate: float = SIMULATION_CONFIG['THRESHOLD_MIN_DEFAULT_RATE']
) -> CurveAnalysis:
    """
    Describe the curvature of a default-rate curve from discrete slopes.

    Args:
        magnitudes: Increasing shock magnitudes
        default_rates: Default rate at each magnitude
        min_default_rate: Floor the default rate must exceed at the inflection point

    Returns:
        CurveAnalysis
    """
    x = np.asarray(magnitudes, dtype=float)
    y = np.asarray(default_rates, dtype=float)
    half = len(x) / 2
    convex_start = True
    accelerates_late = False
    inflection = None

    for i in range(1, len(x) - 1):
        dx_before = x[i] - x[i - 1]
        dx_after = x[i + 1] - x[i]
        if dx_before == 0 or dx_after == 0:
            continue
        slope_before = (y[i] - y[i - 1]) / dx_before
        slope_after = (y[i + 1] - y[i]) / dx_after
        # Rounding noise between equal slopes is not curvature
        if np.isclose(slope_before, slope_after):
            continue

        if i < half and slope_before > slope_after:
            convex_start = False
        if i > half and slope_before < slope_after:
            accelerates_late = True
        if inflection is None and slope_before < slope_after and y[i] > min_default_rate:
            inflection = float(x[i])

    return CurveAnalysis(convex_start, accelerates_late, inflection)


class ShockSeriesRunner:
    """
    Drives independent simulations across a sweep of shock magnitudes.
    """

    def __init__(
        self,
        max_iterations: int = SIMULATION_CONFIG['MAX_ITERATIONS'],
        tolerance: float = SIMULATION_CONFIG['CONVERGENCE_TOLERANCE'],
        shock_type: Union[ShockType, str] = ShockType.UNIFORM,
        max_workers: int = SIMULATION_CONFIG['MAX_WORKERS'],
        seed: Optional[int] = None,
        min_default_rate: float = SIMULATION_CONFIG['THRESHOLD_MIN_DEFAULT_RATE']
    ):
        """
        Initialize the runner.

        Args:
            max_iterations: Clearing iteration cap per run
            tolerance: Clearing convergence threshold
            shock_type: Which banks the shock hits
            max_workers: Threads used for the sweep (1 = sequential)
            seed: Seed for random shock targeting
            min_default_rate: Default-rate floor for the inflection point
        """
        if max_iterations < 1:
            raise InvalidParameter(f"max_iterations must be at least 1, got {max_iterations}")
        if max_workers < 1:
            raise InvalidParameter(f"max_workers must be at least 1, got {max_workers}")
        self.max_iterations = int(max_iterations)
        self.tolerance = float(tolerance)
        self.shock_type = ShockType.parse(shock_type)
        self.max_workers = int(max_workers)
        self.shock_generator = ShockGenerator(seed=seed)
        self.min_default_rate = min_default_rate

    def run_point(self, network: Network, magnitude: float, profile: np.ndarray) -> SeriesPoint:
        """
        Simulate one magnitude on a private copy of ``network``.

        Args:
            network: Base network (left untouched)
            magnitude: Shock magnitude
            profile: Shock vector at magnitude 1

        Returns:
            SeriesPoint
        """
        simulator = ContagionSimulator(
            network.copy(), profile * magnitude, self.max_iterations, self.tolerance
        )
        result = simulator.run()
        return SeriesPoint(
            shock_magnitude=float(magnitude),
            shock_measure=result.shock_measure,
            default_rate=result.default_count_proportion,
            default_count=result.default_count,
            iterations=result.iterations,
            converged=result.converged
        )

    def run(
        self,
        network: Network,
        max_magnitude: float = SIMULATION_CONFIG['MAX_SHOCK_MAGNITUDE'],
        steps: int = SIMULATION_CONFIG['SERIES_STEPS'],
        cancel_event: Optional[threading.Event] = None
    ) -> ShockSeriesResult:
        """
        Sweep shock magnitudes over ``network``.

        Cancellation is checked before each run; a cancelled sweep keeps the
        points already computed.

        Args:
            network: Base network (never mutated)
            max_magnitude: Largest magnitude, in [0, 1]
            steps: Number of magnitudes, at least 2
            cancel_event: Set it to stop the sweep between runs

        Returns:
            ShockSeriesResult in magnitude order
        """
        magnitudes = shock_magnitudes(max_magnitude, steps)
        # Same targets at every magnitude
        profile = self.shock_generator.build(network, 1.0, self.shock_type)

        def simulate(magnitude: float) -> Optional[SeriesPoint]:
            if cancel_event is not None and cancel_event.is_set():
                return None
            return self.run_point(network, magnitude, profile)

        logger.info("Shock series: %d magnitudes up to %.3f (%s shock, %d worker(s))",
                    len(magnitudes), magnitudes[-1], self.shock_type.value, self.max_workers)

        points: List[SeriesPoint] = []
        cancelled = False
        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(simulate, magnitudes))
            for outcome in outcomes:
                if outcome is None:
                    cancelled = True
                    break
                points.append(outcome)
        else:
            for magnitude in magnitudes:
                outcome = simulate(magnitude)
                if outcome is None:
                    cancelled = True
                    break
                points.append(outcome)

        if cancelled:
            logger.info("Shock series cancelled after %d of %d runs", len(points), len(magnitudes))

        x = [p.shock_magnitude for p in points]
        y = [p.default_rate for p in points]
        threshold = find_critical_threshold(x, y)
        analysis = analyze_curve(x, y, self.min_default_rate)
        if threshold is not None:
            logger.info("Critical threshold around shock magnitude %.3f", threshold)

        return ShockSeriesResult(
            points=points,
            critical_threshold=threshold,
            analysis=analysis,
            cancelled=cancelled,
            network=network
        )


def run_shock_series(
    policy: Union[NetworkPolicy, str],
    params: Mapping[str, Any],
    max_magnitude: float = SIMULATION_CONFIG['MAX_SHOCK_MAGNITUDE'],
    steps: int = SIMULATION_CONFIG['SERIES_STEPS'],
    max_iterations: int = SIMULATION_CONFIG['MAX_ITERATIONS'],
    seed: Optional[int] = None,
    shock_type: Union[ShockType, str] = ShockType.UNIFORM,
    max_workers: int = SIMULATION_CONFIG['MAX_WORKERS'],
    cancel_event: Optional[threading.Event] = None
) -> ShockSeriesResult:
    """
    Generate one network and sweep shock magnitudes over copies of it.

    Sweep parameters are validated before the network is generated.
    """
    shock_magnitudes(max_magnitude, steps)
    runner = ShockSeriesRunner(
        max_iterations=max_iterations,
        shock_type=shock_type,
        max_workers=max_workers,
        seed=seed
    )
    network = generate_network(policy, params, seed=seed)
    return runner.run(network, max_magnitude, steps, cancel_event)
