"""
Unit tests for network generation.
"""

import numpy as np
import networkx as nx
import pytest

from bank import Bank
from errors import InvalidParameter
from network_generator import (
    Network,
    NetworkGenerator,
    NetworkPolicy,
    generate_network,
    generate_trivial_network,
)


@pytest.fixture
def random_network():
    return generate_network('random', {'nodes': 10, 'connection_probability': 0.3}, seed=42)


@pytest.fixture
def core_periphery_network():
    return generate_network(
        NetworkPolicy.CORE_PERIPHERY,
        {
            'core_nodes': 5,
            'periphery_nodes': 15,
            'core_connection_probability': 0.7,
            'periphery_connection_probability': 0.2,
        },
        seed=7
    )


def _check_invariants(network: Network):
    L = network.obligations
    n = network.number_of_banks
    assert L.shape == (n, n)
    assert np.all(np.diag(L) == 0)
    assert np.all(L >= 0)
    assert np.array_equal(network.due_payments, L.sum(axis=1) + network.outside_liability)
    R = network.relative_liabilities
    assert np.all(R >= 0)
    assert np.all(R.sum(axis=1) <= 1 + 1e-9)
    assert np.all(R[network.due_payments == 0] == 0)
    assert len(network.banks) == n
    assert all(isinstance(b, Bank) for b in network.banks)
    assert network.sum_outside_assets == pytest.approx(network.outside_asset.sum())


class TestRandomNetwork:
    """Test suite for the Erdős–Rényi policy."""

    def test_invariants(self, random_network):
        """Test due payments, relative liabilities and bank creation."""
        _check_invariants(random_network)
        assert random_network.policy is NetworkPolicy.RANDOM
        assert random_network.core_size == 0

    def test_banks_match_obligations(self, random_network):
        """Each bank is built from the row and column sums of the obligations."""
        for i, bank in enumerate(random_network.banks):
            assert bank.interbank_liability == random_network.obligations[i].sum()
            assert bank.interbank_asset == random_network.obligations[:, i].sum()
            assert bank.outside_asset == random_network.outside_asset[i]

    def test_no_negative_starting_balance(self, random_network):
        """Outside assets cover any interbank deficit."""
        balances = np.array([b.balance for b in random_network.banks])
        assert np.all(balances >= -1e-9)
        assert np.allclose(random_network.net_worth, balances)

    def test_vulnerabilities_normalized(self, random_network):
        """Test vulnerabilities sum to one."""
        assert random_network.vulnerability.sum() == pytest.approx(1.0)
        assert np.all(random_network.vulnerability >= 0)

    def test_seed_reproducibility(self):
        """Same seed, same network."""
        params = {'nodes': 8, 'connection_probability': 0.4}
        a = generate_network('random', params, seed=3)
        b = generate_network('random', params, seed=3)

        assert np.array_equal(a.obligations, b.obligations)
        assert np.array_equal(a.outside_asset, b.outside_asset)

    def test_injected_generator(self):
        """An injected numpy Generator drives the draws."""
        a = NetworkGenerator(rng=np.random.default_rng(11)).random_network(6, 0.5)
        b = NetworkGenerator(seed=11).random_network(6, 0.5)
        assert np.array_equal(a.obligations, b.obligations)

    def test_zero_probability_has_no_links(self):
        """With p = 0 nobody owes anybody."""
        network = generate_network('random', {'nodes': 5, 'connection_probability': 0}, seed=1)

        assert np.count_nonzero(network.obligations) == 0
        assert np.all(network.outside_liability == 0)
        assert np.all(network.due_payments == 0)
        assert np.all(network.relative_liabilities == 0)
        assert np.all(network.vulnerability == 0)

    def test_full_probability_links_every_pair(self):
        """With p = 1 every ordered pair carries an obligation."""
        network = generate_network('random', {'nodes': 5, 'connection_probability': 1.0}, seed=1)

        assert np.count_nonzero(network.obligations) == 5 * 4
        assert np.all(network.outside_liability > 0)
        _check_invariants(network)

    def test_generation_matrices_are_read_only(self, random_network):
        """The obligation and relative-liability matrices cannot be mutated."""
        with pytest.raises(ValueError):
            random_network.obligations[0, 1] = 5.0
        with pytest.raises(ValueError):
            random_network.relative_liabilities[0, 1] = 0.5


class TestCorePeripheryNetwork:
    """Test suite for the core-periphery policy."""

    def test_invariants(self, core_periphery_network):
        _check_invariants(core_periphery_network)
        assert core_periphery_network.number_of_banks == 20
        assert core_periphery_network.core_size == 5
        assert core_periphery_network.is_core(4)
        assert not core_periphery_network.is_core(5)

    def test_outside_balance_sheet(self, core_periphery_network):
        """Core banks use base 5000, periphery 1000; liabilities are half the base."""
        network = core_periphery_network
        assert np.all(network.outside_liability[:5] == 2500)
        assert np.all(network.outside_liability[5:] == 500)
        assert np.all(network.outside_asset[:5] >= 5000)
        assert np.all(network.outside_asset[5:] >= 1000)
        assert all(b.balance > 0 for b in network.banks)
        assert not network.default_vector.any()

    def test_deficit_is_covered(self, core_periphery_network):
        """A bank with a negative interbank position gets 1.1x the deficit on top of its base."""
        network = core_periphery_network
        for i in range(network.number_of_banks):
            base = 5000 if i < 5 else 1000
            net = network.owed_to[i] - network.owed[i]
            if net < 0:
                assert network.outside_asset[i] == pytest.approx(base + 1.1 * abs(net))
            else:
                assert network.outside_asset[i] == base

    def test_link_structure(self):
        """Dense core, no periphery links when the periphery probability is 0."""
        network = NetworkGenerator(seed=5).core_periphery_network(4, 6, 1.0, 0.0)
        L = network.obligations

        for i in range(4):
            for j in range(i + 1, 4):
                assert (L[i, j] > 0) != (L[j, i] > 0)
        assert np.count_nonzero(L[4:, 4:]) == 0
        # Periphery owes core only with a positive periphery probability
        assert np.count_nonzero(L[4:, :4]) == 0
        assert np.count_nonzero(L[:4, 4:]) > 0

    def test_periphery_owes_core(self):
        """With p_core = 0 the only links run from periphery to core."""
        network = NetworkGenerator(seed=5).core_periphery_network(3, 5, 0.0, 1.0)
        L = network.obligations

        assert np.count_nonzero(L[:3, :]) == 0
        assert np.count_nonzero(L[3:, :3]) == 3 * 5
        assert np.all((L[3:, :3] >= 200) & (L[3:, :3] <= 500))

    def test_vulnerabilities_computed(self, core_periphery_network):
        assert core_periphery_network.vulnerability.sum() == pytest.approx(1.0)


class TestTrivialNetwork:
    """Test suite for the homogeneous reference network."""

    def test_reference_values(self):
        network = generate_network('trivial', {'nodes': 10})
        n = 10
        off_diagonal = ~np.eye(n, dtype=bool)

        assert np.all(network.obligations[off_diagonal] == 400)
        assert np.allclose(network.relative_liabilities[off_diagonal], 1 / 9)
        assert np.all(np.diag(network.relative_liabilities) == 0)
        assert np.all(network.outside_asset == 110)
        assert np.all(network.outside_liability == 100)
        assert np.all(network.due_payments == 9 * 400 + 100)
        assert np.all(network.net_worth == 10)
        assert np.allclose(network.vulnerability, 0.1)
        assert network.sum_outside_assets == 1100
        assert all(b.balance == 10 for b in network.banks)

    def test_single_bank(self):
        network = generate_trivial_network(1)

        assert network.obligations.shape == (1, 1)
        assert network.relative_liabilities[0, 0] == 0
        assert network.due_payments[0] == 100


class TestGenerateNetwork:
    """Test suite for parameter handling and dispatch."""

    def test_camel_case_aliases(self):
        """Front-end parameter names are accepted."""
        network = generate_network(
            'corePeriphery',
            {'coreNodes': 2, 'peripheryNodes': 3,
             'coreConnectionProbability': 0.5, 'peripheryConnectionProbability': 0.5},
            seed=1
        )
        assert network.number_of_banks == 5
        network = generate_network('random', {'nodes': 4, 'connectionProbability': 0.5}, seed=1)
        assert network.number_of_banks == 4

    @pytest.mark.parametrize('policy, params', [
        ('random', {'nodes': 0, 'connection_probability': 0.5}),
        ('random', {'nodes': 5, 'connection_probability': 1.5}),
        ('random', {'nodes': 5, 'connection_probability': -0.1}),
        ('random', {'nodes': 5}),
        ('random', {'nodes': 5, 'connection_probability': 0.5, 'extra': 1}),
        ('random', {'nodes': 'ten', 'connection_probability': 0.5}),
        ('core_periphery', {'core_nodes': 0, 'periphery_nodes': 3,
                            'core_connection_probability': 0.5,
                            'periphery_connection_probability': 0.5}),
        ('trivial', {'nodes': -2}),
        ('scale_free', {'nodes': 5}),
    ])
    def test_invalid_parameters(self, policy, params):
        with pytest.raises(InvalidParameter):
            generate_network(policy, params)

    def test_policy_parse(self):
        assert NetworkPolicy.parse('corePeriphery') is NetworkPolicy.CORE_PERIPHERY
        assert NetworkPolicy.parse('TRIVIAL') is NetworkPolicy.TRIVIAL
        assert NetworkPolicy.parse(NetworkPolicy.RANDOM) is NetworkPolicy.RANDOM


class TestNetwork:
    """Test suite for Network construction, copies and graph export."""

    def test_from_obligations(self):
        L = np.array([[0, 10, 0], [0, 0, 10], [0, 0, 0]], dtype=float)
        network = Network.from_obligations(L, [5, 2, 1])

        assert np.array_equal(network.due_payments, [10, 10, 0])
        assert np.array_equal(network.relative_liabilities,
                              [[0, 1, 0], [0, 0, 1], [0, 0, 0]])
        assert network.policy is None

    @pytest.mark.parametrize('L, e', [
        (np.zeros((2, 3)), [1, 1]),
        (np.array([[0, -1], [0, 0]]), [1, 1]),
        (np.array([[1, 0], [0, 0]]), [1, 1]),
        (np.zeros((2, 2)), [1, 1, 1]),
        (np.zeros((2, 2)), [1, -1]),
    ])
    def test_from_obligations_rejects_bad_input(self, L, e):
        with pytest.raises(InvalidParameter):
            Network.from_obligations(L, e)

    def test_copy_is_independent(self, random_network):
        """Mutating a copy never leaks into the original."""
        clone = random_network.copy()
        original_assets = random_network.outside_asset.copy()

        clone.outside_asset[0] -= 1.0
        clone.banks[0].set_outside_asset(0.0)
        clone.banks[0].update_balance()

        assert np.array_equal(random_network.outside_asset, original_assets)
        assert random_network.banks[0].outside_asset == original_assets[0]
        assert clone.banks[0] is not random_network.banks[0]
        with pytest.raises(ValueError):
            clone.obligations[0, 1] = 1.0

    def test_to_graph(self):
        network = generate_trivial_network(4)
        G = network.to_graph()

        assert isinstance(G, nx.DiGraph)
        assert G.number_of_nodes() == 4
        assert G.number_of_edges() == 12
        assert G[0][1]['weight'] == 400
        assert G.nodes[0]['defaulted'] is False
        assert G.nodes[0]['kind'] == 'periphery'

    def test_to_graph_core_kind(self, core_periphery_network):
        G = core_periphery_network.to_graph()
        assert G.nodes[0]['kind'] == 'core'
        assert G.nodes[19]['kind'] == 'periphery'
        assert G.number_of_edges() == np.count_nonzero(core_periphery_network.obligations)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
