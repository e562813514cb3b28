"""
Command-line entry point: run one shock scenario or a shock series.

    python contagion_cli.py --policy random --nodes 10 --probability 0.2 --magnitude 0.5
    python contagion_cli.py --policy trivial --nodes 10 --series --steps 11
"""

import argparse
import sys
from typing import Dict, List, Optional

from contagion_simulator import ShockGenerator, ShockType, apply_shock_and_clear
from errors import ContagionError
from network_generator import NetworkPolicy, generate_network
from settings import DEFAULT_NETWORK_PARAMS, SIMULATION_CONFIG, configure_logging
from shock_series import ShockSeriesRunner


def build_params(args: argparse.Namespace) -> Dict:
    """Policy parameters from the command line, UI defaults where omitted."""
    policy = NetworkPolicy.parse(args.policy)
    params = dict(DEFAULT_NETWORK_PARAMS[policy.value])
    overrides = {
        'nodes': args.nodes,
        'connection_probability': args.probability,
        'core_nodes': args.core_nodes,
        'periphery_nodes': args.periphery_nodes,
        'core_connection_probability': args.core_probability,
        'periphery_connection_probability': args.periphery_probability,
    }
    for key, value in overrides.items():
        if value is not None and key in params:
            params[key] = value
    return params


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Interbank contagion simulation (Eisenberg-Noe)')
    parser.add_argument('--policy', default='random',
                        choices=[p.value for p in NetworkPolicy] + ['corePeriphery'])
    parser.add_argument('--nodes', type=int, default=None)
    parser.add_argument('--probability', type=float, default=None,
                        help='Link probability of a random network')
    parser.add_argument('--core-nodes', type=int, default=None)
    parser.add_argument('--periphery-nodes', type=int, default=None)
    parser.add_argument('--core-probability', type=float, default=None)
    parser.add_argument('--periphery-probability', type=float, default=None)
    parser.add_argument('--magnitude', type=float, default=0.5,
                        help='Fraction of outside assets lost (0-1)')
    parser.add_argument('--shock-type', default=ShockType.UNIFORM.value,
                        choices=[s.value for s in ShockType])
    parser.add_argument('--max-iter', type=int, default=SIMULATION_CONFIG['MAX_ITERATIONS'])
    parser.add_argument('--series', action='store_true', help='Sweep shock magnitudes')
    parser.add_argument('--steps', type=int, default=SIMULATION_CONFIG['SERIES_STEPS'])
    parser.add_argument('--max-magnitude', type=float,
                        default=SIMULATION_CONFIG['MAX_SHOCK_MAGNITUDE'])
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--log-level', default=SIMULATION_CONFIG['LOG_LEVEL'])
    return parser.parse_args(argv)


def run(args: argparse.Namespace) -> None:
    network = generate_network(args.policy, build_params(args), seed=args.seed)
    print(f"Network: {network.number_of_banks} banks, "
          f"outside assets {network.sum_outside_assets:,.2f}")

    if args.series:
        runner = ShockSeriesRunner(max_iterations=args.max_iter,
                                   shock_type=args.shock_type, seed=args.seed)
        series = runner.run(network, args.max_magnitude, args.steps)
        print(series.to_frame().to_string(index=False))
        if series.critical_threshold is None:
            print("No critical threshold: the default rate never increases")
        else:
            print(f"Critical threshold: {series.critical_threshold * 100:.1f}% shock")
        return

    shock = ShockGenerator(seed=args.seed).build(network, args.magnitude, args.shock_type)
    result = apply_shock_and_clear(network, shock, args.max_iter)
    for step in result.steps:
        print(f"  step {step.step_index}: {step.default_count} default(s)")
    print(f"Shock measure:         {result.shock_measure:.4f}")
    print(f"Defaults:              {result.default_count} "
          f"({result.default_count_proportion * 100:.1f}%)")
    print(f"Vulnerability measure: {result.vulnerability_measure:.4f}")
    if result.final_payments is not None:
        status = 'converged' if result.converged else 'not converged'
        print(f"Clearing:              {result.iterations} iteration(s), {status}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        configure_logging(args.log_level)
        run(args)
    except ContagionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
