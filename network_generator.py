"""
Synthetic interbank obligation networks.

Three topology policies are supported: Erdős–Rényi style random networks,
core-periphery networks and a homogeneous "trivial" reference network. Every
policy produces the same ``Network`` shape with all derived vectors computed.
"""

import copy
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import networkx as nx
import numpy as np

from bank import Bank
from errors import InvalidParameter
from settings import CORE_PERIPHERY_POLICY, RANDOM_POLICY, TRIVIAL_POLICY

logger = logging.getLogger(__name__)


class NetworkPolicy(Enum):
    """Topology used to generate a network."""
    RANDOM = "random"
    CORE_PERIPHERY = "core_periphery"
    TRIVIAL = "trivial"

    @classmethod
    def parse(cls, value: Union["NetworkPolicy", str]) -> "NetworkPolicy":
        """Accept an enum member or its name ("corePeriphery" included)."""
        if isinstance(value, cls):
            return value
        key = str(value).strip()
        aliases = {'corePeriphery': 'core_periphery', 'core-periphery': 'core_periphery'}
        key = aliases.get(key, key).lower()
        for policy in cls:
            if policy.value == key:
                return policy
        raise InvalidParameter(f"Unknown network policy: {value!r}")


class Network:
    """
    Interbank obligation network with derived balance-sheet vectors.

    Attributes:
        number_of_banks (int): Number of banks n
        obligations (np.ndarray): n x n matrix, [i, j] = amount bank i owes bank j
        relative_liabilities (np.ndarray): n x n matrix of obligations over due payments
        outside_asset (np.ndarray): Outside assets, reduced in place by shocks
        outside_liability (np.ndarray): Outside liabilities
        owed (np.ndarray): Interbank liabilities (row sums of obligations)
        owed_to (np.ndarray): Interbank assets (column sums of obligations)
        due_payments (np.ndarray): owed + outside_liability
        net_worth (np.ndarray): Bank balances
        vulnerability (np.ndarray): Interbank share of due payments, normalized
        default_vector (np.ndarray): Boolean default flags
        banks (List[Bank]): One Bank per index
        sum_outside_assets (float): Total outside assets at the start of the latest run
        policy (Optional[NetworkPolicy]): Policy that produced the network
        core_size (int): Number of core banks (indices 0..core_size-1)
    """

    def __init__(
        self,
        obligations: np.ndarray,
        outside_asset: np.ndarray,
        outside_liability: np.ndarray,
        relative_liabilities: Optional[np.ndarray] = None,
        net_worth: Optional[np.ndarray] = None,
        policy: Optional[NetworkPolicy] = None,
        core_size: int = 0
    ):
        """
        Build a network and compute every derived vector.

        Args:
            obligations: Square non-negative matrix with a zero diagonal
            outside_asset: Outside assets per bank
            outside_liability: Outside liabilities per bank
            relative_liabilities: Override for the derived relative liabilities
            net_worth: Override for the initial net worth vector
            policy: Policy that produced the network
            core_size: Number of core banks

        Raises:
            InvalidParameter: If the inputs are malformed
        """
        L = np.array(obligations, dtype=float)
        if L.ndim != 2 or L.shape[0] != L.shape[1] or L.shape[0] < 1:
            raise InvalidParameter("Obligation matrix must be a non-empty square matrix")
        n = L.shape[0]
        if not np.all(np.isfinite(L)) or np.any(L < 0):
            raise InvalidParameter("Obligations must be finite and non-negative")
        if np.any(np.diag(L) != 0):
            raise InvalidParameter("A bank cannot owe itself: diagonal must be zero")

        e = np.array(outside_asset, dtype=float)
        ol = np.array(outside_liability, dtype=float)
        for name, vec in (('outside_asset', e), ('outside_liability', ol)):
            if vec.shape != (n,):
                raise InvalidParameter(f"{name} must have length {n}")
            if not np.all(np.isfinite(vec)) or np.any(vec < 0):
                raise InvalidParameter(f"{name} must be finite and non-negative")
        if not 0 <= core_size <= n:
            raise InvalidParameter("core_size must be between 0 and the number of banks")

        self.number_of_banks = n
        self.policy = policy
        self.core_size = int(core_size)
        self.obligations = L
        self.outside_asset = e
        self.outside_liability = ol

        self.owed = L.sum(axis=1)
        self.owed_to = L.sum(axis=0)
        self.due_payments = self.owed + ol

        if relative_liabilities is None:
            self.relative_liabilities = relative_liability_matrix(L, self.due_payments)
        else:
            R = np.array(relative_liabilities, dtype=float)
            if R.shape != (n, n) or np.any(R < 0):
                raise InvalidParameter("Relative liabilities must be a non-negative n x n matrix")
            self.relative_liabilities = R

        self.vulnerability = compute_vulnerabilities(self.due_payments, ol)

        self.banks: List[Bank] = [
            Bank(e[i], self.owed_to[i], ol[i], self.owed[i]) for i in range(n)
        ]
        if net_worth is None:
            self.net_worth = np.array([bank.balance for bank in self.banks])
        else:
            self.net_worth = np.array(net_worth, dtype=float)
        self.default_vector = np.zeros(n, dtype=bool)
        self.update_defaults()
        self.sum_outside_assets = self.compute_sum_outside_assets()

        self._freeze()

    @classmethod
    def from_obligations(
        cls,
        obligations: np.ndarray,
        outside_asset: np.ndarray,
        outside_liability: Optional[np.ndarray] = None
    ) -> "Network":
        """Build a network from explicit arrays (no outside liabilities by default)."""
        n = np.asarray(obligations).shape[0]
        if outside_liability is None:
            outside_liability = np.zeros(n)
        return cls(obligations, outside_asset, outside_liability)

    def _freeze(self) -> None:
        # Generation output that must not change during a run
        for matrix in (self.obligations, self.relative_liabilities,
                       self.due_payments, self.owed, self.owed_to):
            matrix.setflags(write=False)

    def compute_sum_outside_assets(self) -> float:
        return float(self.outside_asset.sum())

    def update_defaults(self) -> np.ndarray:
        """Refresh the default vector from the banks."""
        self.default_vector = np.array([bank.is_default() for bank in self.banks], dtype=bool)
        return self.default_vector

    @property
    def default_count(self) -> int:
        return int(self.default_vector.sum())

    def is_core(self, index: int) -> bool:
        return index < self.core_size

    def copy(self) -> "Network":
        """Independent deep copy, safe to shock without touching this network."""
        clone = copy.deepcopy(self)
        clone._freeze()
        return clone

    def to_graph(self) -> nx.DiGraph:
        """
        Export the network as a directed graph for renderers.

        Edge i -> j carries weight L[i, j] (bank i owes bank j).

        Returns:
            NetworkX DiGraph with balance-sheet node attributes
        """
        G = nx.DiGraph()
        for i, bank in enumerate(self.banks):
            G.add_node(
                i,
                kind='core' if self.is_core(i) else 'periphery',
                net_worth=float(self.net_worth[i]),
                defaulted=bool(self.default_vector[i]),
                **bank.get_balance_sheet()
            )
        rows, cols = np.nonzero(self.obligations)
        for i, j in zip(rows, cols):
            G.add_edge(int(i), int(j), weight=float(self.obligations[i, j]))
        return G

    def __repr__(self) -> str:
        policy = self.policy.value if self.policy else 'custom'
        return (f"Network(policy={policy}, banks={self.number_of_banks}, "
                f"defaults={self.default_count})")


def relative_liability_matrix(obligations: np.ndarray, due_payments: np.ndarray) -> np.ndarray:
    """
    Obligations as a share of each debtor's due payments.

    Rows of banks with nothing due are all zeros.
    """
    R = np.zeros_like(obligations, dtype=float)
    owes = due_payments > 0
    R[owes] = obligations[owes] / due_payments[owes][:, np.newaxis]
    return R


def compute_vulnerabilities(due_payments: np.ndarray, outside_liability: np.ndarray) -> np.ndarray:
    """
    Interbank share of due payments, normalized to sum to 1 when positive.
    """
    vulnerability = np.zeros_like(due_payments, dtype=float)
    owes = due_payments > 0
    vulnerability[owes] = (due_payments[owes] - outside_liability[owes]) / due_payments[owes]
    total = vulnerability.sum()
    if total > 0:
        vulnerability = vulnerability / total
    return vulnerability


# ============================================================================
# PARAMETER VALIDATION
# ============================================================================
def _check_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        else:
            raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise InvalidParameter(f"{name} must be at least 1, got {value}")
    return int(value)


def _check_probability(name: str, value: Any) -> float:
    try:
        p = float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(f"{name} must be a number, got {value!r}") from None
    if not 0.0 <= p <= 1.0:
        raise InvalidParameter(f"{name} must be between 0 and 1, got {value}")
    return p


def _resolve_rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


# ============================================================================
# POLICIES
# ============================================================================
def generate_random_network(
    n: int,
    link_probability: float,
    rng: Optional[np.random.Generator] = None
) -> Network:
    """
    Erdős–Rényi style network.

    Each ordered pair is linked with probability ``link_probability`` and the
    obligation is a binomial count scaled by n. Outside assets are drawn so
    that no bank starts with a negative balance.

    Args:
        n: Number of banks
        link_probability: Probability of an obligation (and of an outside liability)
        rng: Random generator

    Returns:
        Fully populated Network
    """
    n = _check_count('nodes', n)
    p = _check_probability('connection_probability', link_probability)
    rng = _resolve_rng(rng)

    trials = RANDOM_POLICY['TRIALS_PER_BANK'] * n
    L = np.zeros((n, n))
    outside_liability = np.zeros(n)
    for i in range(n):
        if rng.random() < p:
            outside_liability[i] = rng.random() * n * n
        for j in range(n):
            if i != j and rng.random() < p:
                L[i, j] = rng.binomial(trials, RANDOM_POLICY['TRIAL_PROBABILITY'])

    owed = L.sum(axis=1)
    owed_to = L.sum(axis=0)
    outside_asset = np.zeros(n)
    for i in range(n):
        if owed_to[i] < owed[i] + outside_liability[i]:
            deficit = owed[i] + outside_liability[i] - owed_to[i]
            outside_asset[i] = abs(deficit) + rng.random() * n * n
        else:
            # Low interbank leverage: generous outside assets
            outside_asset[i] = rng.random() * n * n * n

    logger.debug("Random network: %d banks, %d links", n, int(np.count_nonzero(L)))
    return Network(L, outside_asset, outside_liability, policy=NetworkPolicy.RANDOM)


def generate_core_periphery_network(
    n_core: int,
    n_periphery: int,
    p_core: float,
    p_periphery: float,
    rng: Optional[np.random.Generator] = None
) -> Network:
    """
    Core-periphery network: a dense core of large banks and a sparse periphery.

    Core banks occupy indices 0..n_core-1.

    Args:
        n_core: Number of core banks
        n_periphery: Number of periphery banks
        p_core: Core-core link probability (core owing periphery uses p_core / 2)
        p_periphery: Periphery-owes-core probability (periphery-periphery uses p_periphery / 2)
        rng: Random generator

    Returns:
        Fully populated Network
    """
    n_core = _check_count('core_nodes', n_core)
    n_periphery = _check_count('periphery_nodes', n_periphery)
    p_core = _check_probability('core_connection_probability', p_core)
    p_periphery = _check_probability('periphery_connection_probability', p_periphery)
    rng = _resolve_rng(rng)
    cfg = CORE_PERIPHERY_POLICY

    n = n_core + n_periphery
    L = np.zeros((n, n))

    def draw(key: str) -> float:
        trials, prob = cfg[key]
        return rng.binomial(trials, prob)

    # Core-core, direction chosen at random
    for i in range(n_core):
        for j in range(i + 1, n_core):
            if rng.random() < p_core:
                if rng.random() < 0.5:
                    L[i, j] = draw('CORE_CORE')
                else:
                    L[j, i] = draw('CORE_CORE')

    # Core-periphery, asymmetric
    for i in range(n_core):
        for j in range(n_core, n):
            if rng.random() < p_core / 2:
                L[i, j] = draw('CORE_TO_PERIPHERY')
            if rng.random() < p_periphery:
                L[j, i] = draw('PERIPHERY_TO_CORE')

    # Periphery-periphery, rare
    for i in range(n_core, n):
        for j in range(i + 1, n):
            if rng.random() < p_periphery / 2:
                if rng.random() < 0.5:
                    L[i, j] = draw('PERIPHERY_PERIPHERY')
                else:
                    L[j, i] = draw('PERIPHERY_PERIPHERY')

    owed = L.sum(axis=1)
    owed_to = L.sum(axis=0)
    outside_asset = np.zeros(n)
    outside_liability = np.zeros(n)
    for i in range(n):
        base = cfg['CORE_BASE_ASSET'] if i < n_core else cfg['PERIPHERY_BASE_ASSET']
        net_internal = owed_to[i] - owed[i]
        if net_internal < 0:
            outside_asset[i] = base + abs(net_internal) * cfg['DEFICIT_COVER']
        else:
            outside_asset[i] = base
        outside_liability[i] = base * cfg['LIABILITY_RATIO']

    logger.debug("Core-periphery network: %d core, %d periphery, %d links",
                 n_core, n_periphery, int(np.count_nonzero(L)))
    return Network(L, outside_asset, outside_liability,
                   policy=NetworkPolicy.CORE_PERIPHERY, core_size=n_core)


def generate_trivial_network(n: int) -> Network:
    """
    Homogeneous reference network: every bank owes every other bank the same.

    Relative liabilities are fixed at 1 / (n - 1) and the initial net worth is
    the TRIVIAL_POLICY constant rather than the balance formula.
    """
    n = _check_count('nodes', n)
    cfg = TRIVIAL_POLICY

    L = np.full((n, n), cfg['OBLIGATION'])
    np.fill_diagonal(L, 0.0)
    R = np.zeros((n, n))
    if n > 1:
        R[:] = 1.0 / (n - 1)
        np.fill_diagonal(R, 0.0)

    return Network(
        L,
        np.full(n, cfg['OUTSIDE_ASSET']),
        np.full(n, cfg['OUTSIDE_LIABILITY']),
        relative_liabilities=R,
        net_worth=np.full(n, cfg['NET_WORTH']),
        policy=NetworkPolicy.TRIVIAL
    )


# Parameter names per policy, with the aliases used by the web front end
_PARAM_ALIASES = {
    'connectionProbability': 'connection_probability',
    'connections': 'connection_probability',
    'coreNodes': 'core_nodes',
    'peripheryNodes': 'periphery_nodes',
    'coreConnectionProbability': 'core_connection_probability',
    'coreConnections': 'core_connection_probability',
    'peripheryConnectionProbability': 'periphery_connection_probability',
    'peripheryConnections': 'periphery_connection_probability',
}

_POLICY_PARAMS: Dict[NetworkPolicy, Tuple[str, ...]] = {
    NetworkPolicy.RANDOM: ('nodes', 'connection_probability'),
    NetworkPolicy.CORE_PERIPHERY: ('core_nodes', 'periphery_nodes',
                                   'core_connection_probability',
                                   'periphery_connection_probability'),
    NetworkPolicy.TRIVIAL: ('nodes',),
}


def normalize_params(policy: NetworkPolicy, params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map front-end aliases to parameter names and check the key set.

    Raises:
        InvalidParameter: On missing or unknown keys
    """
    expected = _POLICY_PARAMS[policy]
    normalized = {}
    for key, value in dict(params).items():
        name = _PARAM_ALIASES.get(key, key)
        if name not in expected:
            raise InvalidParameter(f"Unknown parameter {key!r} for {policy.value} network")
        normalized[name] = value
    missing = [name for name in expected if name not in normalized]
    if missing:
        raise InvalidParameter(f"Missing parameter(s) for {policy.value} network: {missing}")
    return normalized


class NetworkGenerator:
    """
    Generates interbank networks from a private, seedable random generator.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        """
        Initialize the generator.

        Args:
            seed: Random seed for reproducibility
            rng: Existing generator to draw from (takes precedence over seed)
        """
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def random_network(self, n: int, link_probability: float) -> Network:
        return generate_random_network(n, link_probability, self.rng)

    def core_periphery_network(
        self,
        n_core: int,
        n_periphery: int,
        p_core: float,
        p_periphery: float
    ) -> Network:
        return generate_core_periphery_network(n_core, n_periphery, p_core, p_periphery, self.rng)

    def trivial_network(self, n: int) -> Network:
        return generate_trivial_network(n)

    def generate(self, policy: Union[NetworkPolicy, str], params: Mapping[str, Any]) -> Network:
        """
        Generate a network for a policy and its parameter dictionary.

        Args:
            policy: NetworkPolicy or its name
            params: Policy parameters (see normalize_params)

        Returns:
            Fully populated Network
        """
        policy = NetworkPolicy.parse(policy)
        args = normalize_params(policy, params)
        if policy is NetworkPolicy.RANDOM:
            network = self.random_network(args['nodes'], args['connection_probability'])
        elif policy is NetworkPolicy.CORE_PERIPHERY:
            network = self.core_periphery_network(
                args['core_nodes'],
                args['periphery_nodes'],
                args['core_connection_probability'],
                args['periphery_connection_probability']
            )
        else:
            network = self.trivial_network(args['nodes'])
        logger.info("Generated %r", network)
        return network


def generate_network(
    policy: Union[NetworkPolicy, str],
    params: Mapping[str, Any],
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None
) -> Network:
    """Generate a network; see NetworkGenerator.generate."""
    return NetworkGenerator(seed=seed, rng=rng).generate(policy, params)
